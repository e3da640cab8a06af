import os

# Banco de dados
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./esign.db")

# Armazenamento dos documentos (Cloudinary)
STORAGE_ROOT_FOLDER = os.getenv("STORAGE_ROOT_FOLDER", "secure_documents")
SIGNED_URL_TTL_SECONDS = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))

# Link público de assinatura
PUBLIC_APP_URL = os.getenv("PUBLIC_APP_URL", "http://localhost:5173")

# Limite de tentativas de envio por envelope
SUBMIT_RATE_LIMIT = int(os.getenv("SUBMIT_RATE_LIMIT", "5"))
SUBMIT_RATE_WINDOW_SECONDS = int(os.getenv("SUBMIT_RATE_WINDOW_SECONDS", "60"))
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

# Envelopes presos em pending_seal por mais tempo que isso são liberados
STALLED_SEAL_SECONDS = int(os.getenv("STALLED_SEAL_SECONDS", "900"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
