# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )
    PORTFOLIO_OWNER: str = Field(default="David", validation_alias="PORTFOLIO_OWNER")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:5173", validation_alias="ALLOWED_ORIGIN"
    )
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Knowledge corpus
    KNOWLEDGE_BACKEND: str = Field(default="redis", validation_alias="KNOWLEDGE_BACKEND")
    KNOWLEDGE_SEED_PATH: str = Field(default="", validation_alias="KNOWLEDGE_SEED_PATH")

    # Embedding Engine
    EMBEDDING_API_URL: str = Field(
        default="http://127.0.0.1:8000/api/embeddings",
        validation_alias="EMBEDDING_API_URL",
    )
    EMBEDDING_TIMEOUT_SECONDS: float = 8.0
    EMBEDDING_DIMENSIONS: int = 768
    EMBEDDING_SERVER_FALLBACK_DIMENSIONS: int = 256
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-mpnet-base-v2"

    # Retrieval
    RETRIEVAL_TOP_K: int = 5
    RETRIEVAL_THRESHOLD: float = 0.2
    VECTOR_WEIGHT: float = 0.6
    KEYWORD_WEIGHT: float = 0.4
    CATEGORY_BONUS: float = 0.1
    BM25_K1: float = 1.5
    BM25_B: float = 0.75
    BM25_AVG_DOC_LENGTH: float = 500.0
    EMBEDDING_CACHE_SIZE: int = 200
    RESULT_CACHE_SIZE: int = 50

    # Reveal pacing (milliseconds)
    REVEAL_FIRST_STEP_MS: int = 300
    REVEAL_STEP_MS: int = 700
    REVEAL_FAST_STEP_MS: int = 150
    REVEAL_FINAL_STEP_MS: int = 250
    REVEAL_COMPLETE_MS: int = 500
    REVEAL_SAFETY_TIMEOUT_MS: int = 30_000

    # Anthropic Settings
    ANTHROPIC_API_URL: str = Field(
        default="https://api.anthropic.com/v1/messages",
        validation_alias="ANTHROPIC_API_URL",
    )
    ANTHROPIC_API_KEY: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    ANTHROPIC_MODEL: str = Field(
        default="claude-3-5-haiku-latest", validation_alias="ANTHROPIC_MODEL"
    )
    ANTHROPIC_VERSION: str = Field(
        default="2023-06-01", validation_alias="ANTHROPIC_VERSION"
    )
    GENERATION_TIMEOUT_SECONDS: float = 60.0
    GENERATION_MAX_TOKENS: int = 800
    HISTORY_TURNS: int = 5

    # Logging knobs
    LOGGER_NAME: str = "portfolio-rag"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    SYSTEM_PROMPT_EN: str = (
        "You are {owner}'s portfolio assistant. You answer visitors' questions about "
        "{owner}'s background, projects, skills, experience and content.\n"
        "\n"
        "RULES:\n"
        "- Treat the KNOWLEDGE BASE section as the only source of truth about {owner}.\n"
        "- If the knowledge base does not cover the question, say so honestly and suggest "
        "a related topic you can answer.\n"
        "- Never invent projects, employers, dates or numbers.\n"
        "- Speak about {owner} in the third person, friendly and concise.\n"
        "- Markdown is allowed (short lists, bold). No code fences unless asked for code.\n"
    )

    SYSTEM_PROMPT_ID: str = (
        "Kamu adalah asisten portofolio milik {owner}. Kamu menjawab pertanyaan pengunjung "
        "tentang latar belakang, proyek, keahlian, pengalaman, dan konten {owner}.\n"
        "\n"
        "ATURAN:\n"
        "- Anggap bagian KNOWLEDGE BASE sebagai satu-satunya sumber kebenaran tentang {owner}.\n"
        "- Jika knowledge base tidak mencakup pertanyaan, katakan dengan jujur dan sarankan "
        "topik terkait yang bisa kamu jawab.\n"
        "- Jangan mengarang proyek, perusahaan, tanggal, atau angka.\n"
        "- Bicarakan {owner} sebagai orang ketiga, ramah dan ringkas.\n"
        "- Markdown diperbolehkan (daftar pendek, huruf tebal).\n"
    )


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
