"""Cache TTL and key prefix constants."""

# Cache TTL constants (in seconds)
TTL_RESPONSE = 3600  # 1 hour - default lifetime of a cached answer
TTL_FOREVER = 0  # never expires

# Cache key prefixes
KEY_PREFIX_RESPONSE = "chatbot"  # chatbot:{sha256}
FILE_PREFIX_RESPONSE = "chatbot_"  # chatbot_{sha256}.json

# Defaults folded into the cache key when the context omits them
KEY_DEFAULT_MODEL = "default"
KEY_DEFAULT_PROMPT = ""
KEY_DEFAULT_TEMPERATURE = 0.7
KEY_DEFAULT_MAX_TOKENS = 256
