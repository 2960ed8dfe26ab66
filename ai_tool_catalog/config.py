"""Project configuration and paths."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Project structure
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_FILE = DATA_DIR / "catalog.db"

# Categories created by `ai-tool-catalog seed` on an empty store
INITIAL_CATEGORIES = [
    "Chatbots & Assistants",
    "Image & Creative",
    "Development & Agents",
]

# Sample tools seeded alongside them; "category" names one of INITIAL_CATEGORIES
INITIAL_TOOLS = [
    {
        "name": "OpenAI ChatGPT",
        "url": "https://chat.openai.com",
        "type": "CHATBOT",
        "category": "Chatbots & Assistants",
        "summary": "Advanced AI language model for conversation, coding, and content generation.",
        "what_it_is": "A conversational AI model from OpenAI that generates human-like text from user prompts.",
        "capabilities": [
            "Generates text, code, and creative content",
            "Answers complex queries across domains",
            "Keeps context across follow-up questions",
        ],
        "best_for": ["General purpose queries and research", "Drafting and editing written content"],
        "tags": ["LLM", "Productivity", "General"],
        "is_pinned": True,
    },
    {
        "name": "ClickUp Chat",
        "url": "https://clickup.com/features/chat",
        "type": "CHATBOT",
        "category": "Chatbots & Assistants",
        "summary": "AI-integrated chat within ClickUp for task management.",
        "what_it_is": "A chat interface inside ClickUp that ties conversations to tasks and projects.",
        "capabilities": ["Summarizes long discussion threads", "Creates tasks directly from chat messages"],
        "best_for": ["Teams using ClickUp for project management"],
        "tags": ["Collaboration", "Productivity"],
    },
    {
        "name": "Google Labs",
        "url": "https://labs.google",
        "type": "CREATIVE",
        "category": "Image & Creative",
        "summary": "Experimental AI tools and features from Google.",
        "what_it_is": "A playground where Google tests early-stage AI projects before wider release.",
        "capabilities": ["Early access to AI experiments", "New generative features for creative work"],
        "best_for": ["Early adopters wanting to test new tech"],
        "tags": ["Experimental", "Google", "Creative"],
    },
    {
        "name": "Adeptly",
        "url": "https://adeptly.ai",
        "type": "AGENT",
        "category": "Development & Agents",
        "summary": "Build and deploy AI agents for various tasks.",
        "what_it_is": "A platform for building, testing, and deploying autonomous AI agents.",
        "capabilities": ["Design custom agents with specific behaviors", "Deploy agents to automated workflows"],
        "best_for": ["Automating complex, multi-step workflows"],
        "tags": ["Agents", "Automation", "No-code"],
    },
    {
        "name": "PUNKU.ai",
        "url": "https://punku.ai",
        "type": "DEV",
        "category": "Development & Agents",
        "summary": "AI-powered development assistant.",
        "tags": ["Coding"],
    },
]


def database_path() -> str:
    """SQLite location for the catalog; ':memory:' is passed through untouched."""
    value = os.getenv("CATALOG_DB_PATH")
    if value:
        return value
    return str(DEFAULT_DB_FILE)


def fetch_timeout_seconds() -> float:
    return float(os.getenv("FETCH_TIMEOUT_SECONDS", "5"))


def category_cache_ttl_seconds() -> float:
    return float(os.getenv("CATEGORY_CACHE_TTL_SECONDS", "60"))


def body_excerpt_chars() -> int:
    return int(os.getenv("BODY_EXCERPT_CHARS", "3000"))


def fallback_category_id() -> Optional[str]:
    return os.getenv("FALLBACK_CATEGORY_ID") or None


def web_port() -> int:
    return int(os.getenv("WEB_PORT", "8000"))


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO")
