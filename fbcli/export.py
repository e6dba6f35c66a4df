"""
Output renderers (JSON, Markdown) and tabular export of listings.
"""
import json
import logging
from typing import Any, List, Sequence

import pandas as pd

from .models import Conversation, Listing, Message, Record

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW = 200
LAST_MESSAGE_PREVIEW = 100


def dump(record: Record) -> dict:
    """JSON-ready dict with camelCase keys."""
    return record.model_dump(mode="json", by_alias=True)


def _to_plain(payload: Any) -> Any:
    if isinstance(payload, Record):
        return dump(payload)
    if isinstance(payload, dict):
        return {key: _to_plain(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_to_plain(item) for item in payload]
    return payload


def to_json(payload: Any) -> str:
    """Serialize records (or containers of records) as indented JSON."""
    return json.dumps(_to_plain(payload), indent=2, ensure_ascii=False)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _format_datetime(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "Unknown"


def to_markdown_listings(listings: Sequence[Listing]) -> str:
    if not listings:
        return "# Facebook Marketplace Search\n\nNo listings found.\n"

    md = "# Facebook Marketplace Search\n\n"
    for i, listing in enumerate(listings, 1):
        md += f"## {i}. {listing.title or 'Untitled'}\n"
        md += f"- **ID:** {listing.id}\n"
        md += f"- **Price:** ${listing.price} {listing.currency}\n"
        md += f"- **Location:** {listing.location}\n"
        md += f"- **Seller:** {listing.seller.name or 'Unknown'}\n"
        md += f"- **Posted:** {listing.posted_at.date().isoformat()}\n"
        md += f"- **URL:** {listing.url}\n"
        if listing.description:
            md += f"- **Description:** {_truncate(listing.description, DESCRIPTION_PREVIEW)}\n"
        md += "\n"
    return md


def to_markdown_messages(messages: Sequence[Message]) -> str:
    if not messages:
        return "# Conversation\n\nNo messages.\n"

    md = "# Conversation\n\n"
    for message in messages:
        md += f"**{message.sender_name}** ({_format_datetime(message.timestamp)}):\n"
        md += f"{message.text}\n\n"
    return md


def to_markdown_conversations(conversations: Sequence[Conversation]) -> str:
    if not conversations:
        return "# Conversations\n\nNo conversations.\n"

    md = "# Conversations\n\n"
    for i, conversation in enumerate(conversations, 1):
        names = ", ".join(p.name for p in conversation.participants) or "Unknown"
        md += f"## {i}. {names}\n"
        md += f"- **ID:** {conversation.id}\n"
        if conversation.last_message:
            md += f"- **Last Message:** {_truncate(conversation.last_message.text, LAST_MESSAGE_PREVIEW)}\n"
            md += f"- **Time:** {_format_datetime(conversation.last_message.timestamp)}\n"
        md += f"- **Unread:** {conversation.unread_count}\n\n"
    return md


def listing_rows(listings: Sequence[Listing]) -> List[dict]:
    """Flatten listings into one row per listing."""
    rows = []
    for x in listings:
        rows.append({
            "id": x.id,
            "title": x.title,
            "price": x.price,
            "currency": x.currency,
            "location": x.location,
            "condition": x.condition,
            "category": x.category,
            "seller_id": x.seller.id,
            "seller_name": x.seller.name,
            "description": x.description,
            "images": "|".join(x.images),
            "url": x.url,
            "posted_at": x.posted_at.isoformat(),
        })
    return rows


def save_listings(listings: Sequence[Listing], out_path: str) -> int:
    """Save listings to CSV, or to Excel when the path ends in .xlsx."""
    df = pd.DataFrame(listing_rows(listings))
    if out_path.lower().endswith(".xlsx"):
        df.to_excel(out_path, index=False)
    else:
        df.to_csv(out_path, index=False)
    logger.info(f">>> Saved {len(df)} rows to {out_path}")
    return len(df)
