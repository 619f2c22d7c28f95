# Core package - foundational components
#
# Modules:
# - config: Application settings
# - logging: Structured logging
# - security: Password hashing
# - seed: Idempotent bootstrap of empty collections
# - storage: Interchangeable collection backends (local files, MongoDB)
