# Shared helpers: logging, configuration checks, input validation, exports
