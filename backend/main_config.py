import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_DIR = os.path.join(BASE_DIR, "db")
STORE_DB_PATH = os.getenv("MUSE_STORE_PATH") or os.path.join(DB_DIR, "muse.db")

PROMPTS_DIR = os.path.join(BASE_DIR, "prompts")
MUSE_SYSTEM_PROMPT_PATH = os.path.join(PROMPTS_DIR, "muse_system_prompt.md")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
HOST = os.getenv("MUSE_HOST", "0.0.0.0")
PORT = int(os.getenv("MUSE_PORT", "8000"))
