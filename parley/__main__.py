from parley.server import main

main()
