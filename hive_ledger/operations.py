"""Pure builders for ledger operations and their metadata."""

from __future__ import annotations

import json
import re
import secrets
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import Settings, settings as default_settings
from .errors import ValidationError
from .models import Beneficiary, LedgerOperation, SubCommunity, ValidationResult

MAX_TITLE_LENGTH = 255
MAX_BODY_LENGTH = 65535
MAX_PERMLINK_LENGTH = 255
MAX_BENEFICIARIES = 8
MAX_ACCEPTED_PAYOUT = "1000000.000 HBD"
FULL_WEIGHT = 10000

_ACCOUNT_RE = re.compile(r"^[a-z][a-z0-9.-]{2,15}$")


def to_basis_points(percent: float) -> int:
    """Convert a -100..100 percentage to the ledger's -10000..10000 scale."""
    if percent < -100 or percent > 100:
        raise ValidationError(["Vote weight must be between -100 and 100"])
    return round(percent * 100)


def from_basis_points(weight: int) -> float:
    return weight / 100


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_permlink(title: str, now_ms: Optional[int] = None) -> str:
    """Title slug plus time and a short random suffix."""
    stamp = now_ms if now_ms is not None else _now_ms()
    suffix = secrets.token_hex(3)
    base = slugify(title)[: MAX_PERMLINK_LENGTH - 30]
    return f"{base}-{stamp}-{suffix}" if base else f"post-{stamp}-{suffix}"


def generate_reply_permlink(parent_author: str, parent_permlink: str, now_ms: Optional[int] = None) -> str:
    stamp = now_ms if now_ms is not None else _now_ms()
    base = slugify(f"re-{parent_author}-{parent_permlink}")
    tail = f"-{stamp}"
    return base[: MAX_PERMLINK_LENGTH - len(tail)] + tail


def parse_json_metadata(raw: Any) -> Dict[str, Any]:
    """Decode ``json_metadata`` leniently; anything but an object becomes ``{}``."""
    if isinstance(raw, dict):
        return dict(raw)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def format_json_metadata(metadata: Dict[str, Any]) -> str:
    return json.dumps({k: v for k, v in metadata.items() if v is not None}, separators=(",", ":"))


def validate_beneficiaries(beneficiaries: Sequence[Beneficiary]) -> ValidationResult:
    errors: List[str] = []

    if len(beneficiaries) > MAX_BENEFICIARIES:
        errors.append(f"Maximum {MAX_BENEFICIARIES} beneficiaries allowed")

    total_weight = 0
    seen = set()
    for beneficiary in beneficiaries:
        if not beneficiary.account or not _ACCOUNT_RE.match(beneficiary.account):
            errors.append(f"Invalid account name: {beneficiary.account or '(empty)'}")
        if beneficiary.account in seen:
            errors.append(f"Duplicate beneficiary account: {beneficiary.account}")
        seen.add(beneficiary.account)

        if not isinstance(beneficiary.weight, int) or not 1 <= beneficiary.weight <= FULL_WEIGHT:
            errors.append(
                f"Invalid weight for {beneficiary.account}: {beneficiary.weight} (must be 1-10000)"
            )
            continue
        total_weight += beneficiary.weight

    if total_weight > FULL_WEIGHT:
        errors.append(
            f"Total beneficiary weight {total_weight} exceeds maximum 10000 "
            f"({total_weight / 100:.2f}% > 100%)"
        )

    return ValidationResult(is_valid=not errors, errors=errors)


def create_vote_operation(voter: str, author: str, permlink: str, weight: float) -> LedgerOperation:
    return LedgerOperation("vote", {
        "voter": voter,
        "author": author,
        "permlink": permlink,
        "weight": to_basis_points(weight),
    })


def create_comment_operation(
    *,
    author: str,
    permlink: str,
    body: str,
    parent_author: str,
    parent_permlink: str,
    title: str = "",
    json_metadata: str = "{}",
) -> LedgerOperation:
    return LedgerOperation("comment", {
        "parent_author": parent_author,
        "parent_permlink": parent_permlink,
        "author": author,
        "permlink": permlink,
        "title": title,
        "body": body,
        "json_metadata": json_metadata,
    })


def build_post_metadata(
    *,
    tags: Iterable[str],
    sport_category: Optional[str] = None,
    featured_image: Optional[str] = None,
    sub_community: Optional[SubCommunity] = None,
    extra: Optional[Dict[str, Any]] = None,
    config: Settings = default_settings,
) -> Dict[str, Any]:
    all_tags: List[str] = []
    extra_tags = [sub_community.slug] if sub_community else []
    for tag in [*tags, config.community_id, *config.community_tags, *extra_tags]:
        if tag and tag not in all_tags:
            all_tags.append(tag)

    metadata: Dict[str, Any] = {
        "app": config.app_tag,
        "format": "markdown",
        "tags": all_tags,
        "community": config.community_id,
        "sport_category": sport_category,
        "image": [featured_image] if featured_image else None,
    }
    if sub_community:
        metadata["sub_community"] = sub_community.slug
        metadata["sub_community_id"] = sub_community.id
        metadata["sub_community_name"] = sub_community.name
    metadata.update(extra or {})
    return metadata


def build_comment_metadata(extra: Optional[Dict[str, Any]] = None, config: Settings = default_settings) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "app": config.app_tag,
        "format": "markdown",
        "tags": [config.app_name],
    }
    metadata.update(extra or {})
    return metadata


def default_beneficiaries(config: Settings = default_settings) -> List[Beneficiary]:
    return [Beneficiary(config.platform_beneficiary, config.platform_beneficiary_weight)]


def create_comment_options_operation(
    *,
    author: str,
    permlink: str,
    beneficiaries: Optional[Sequence[Beneficiary]] = None,
    percent_hbd: int = FULL_WEIGHT,
    allow_votes: bool = True,
    allow_curation_rewards: bool = True,
    config: Settings = default_settings,
) -> LedgerOperation:
    """Reward split and beneficiary list for a freshly created post.

    Raises :class:`ValidationError` when the beneficiary list is invalid.
    """
    if beneficiaries is None:
        beneficiaries = default_beneficiaries(config)

    validation = validate_beneficiaries(beneficiaries)
    if not validation.is_valid:
        raise ValidationError([f"Invalid beneficiaries: {', '.join(validation.errors)}"])

    ordered = sorted(beneficiaries, key=lambda b: b.account)
    extensions: List[Any] = []
    if ordered:
        extensions.append([0, {"beneficiaries": [{"account": b.account, "weight": b.weight} for b in ordered]}])

    return LedgerOperation("comment_options", {
        "author": author,
        "permlink": permlink,
        "max_accepted_payout": MAX_ACCEPTED_PAYOUT,
        "percent_hbd": percent_hbd,
        "allow_votes": allow_votes,
        "allow_curation_rewards": allow_curation_rewards,
        "extensions": extensions,
    })
