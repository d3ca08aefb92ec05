# Parley Services
#
# Store functions live in users, sessions, chats and messages; each takes the
# caller's AsyncSession so a handler's work commits or rolls back together.
