"""Built-in FAQ knowledge for bootstrapping an empty store."""
from typing import Any, Dict, List, Tuple
import structlog

from kbchat.rag.embedder import EmbeddingClient
from kbchat.rag.store import DocumentStore

logger = structlog.get_logger()

DEFAULT_KNOWLEDGE: List[Tuple[str, Dict[str, Any]]] = [
    (
        "Our company offers 24/7 customer support through multiple channels including "
        "email, phone, and live chat. Response times are typically under 2 hours for "
        "email and immediate for chat during business hours.",
        {"category": "support", "topic": "customer-service"},
    ),
    (
        "We have a 30-day return policy for all products. Items must be in original "
        "condition with tags attached. Refunds are processed within 5-7 business days "
        "after we receive the returned item.",
        {"category": "policy", "topic": "returns"},
    ),
    (
        "Shipping is free for orders over $50. Standard shipping takes 3-5 business "
        "days, while express shipping delivers in 1-2 business days. International "
        "shipping is available to over 100 countries.",
        {"category": "shipping", "topic": "delivery"},
    ),
    (
        "We accept all major credit cards, PayPal, Apple Pay, and Google Pay. All "
        "transactions are encrypted and secure. We do not store your credit card "
        "information on our servers.",
        {"category": "payment", "topic": "methods"},
    ),
    (
        "Our products come with a 1-year warranty covering manufacturing defects. "
        "Extended warranty options are available at checkout. Warranty claims can be "
        "filed through our customer portal.",
        {"category": "policy", "topic": "warranty"},
    ),
    (
        "Account registration is free and takes less than 2 minutes. Registered users "
        "get exclusive benefits including early access to sales, loyalty points, and "
        "personalized recommendations.",
        {"category": "account", "topic": "registration"},
    ),
    (
        "We use industry-standard encryption to protect your personal data. Your "
        "information is never shared with third parties without your consent. You can "
        "request data deletion at any time.",
        {"category": "privacy", "topic": "data-protection"},
    ),
    (
        "Track your order using the tracking number sent to your email. Real-time "
        "updates are available in your account dashboard. You'll receive notifications "
        "at each shipping milestone.",
        {"category": "shipping", "topic": "tracking"},
    ),
]


async def seed_default_knowledge(embedder: EmbeddingClient, store: DocumentStore) -> int:
    """Store each built-in entry as a single chunk.

    Entries are stored one after another; a failure aborts the seeding and
    leaves earlier entries in place.

    Returns:
        Number of entries stored

    Raises:
        EmbeddingServiceError: If an entry cannot be embedded
        StorageError: If an entry cannot be stored
    """
    stored = 0
    for content, metadata in DEFAULT_KNOWLEDGE:
        embedding = await embedder.embed(content)
        await store.insert(content, embedding, {**metadata, "seeded": True})
        stored += 1

    logger.info("default_knowledge_seeded", entries=stored)
    return stored
