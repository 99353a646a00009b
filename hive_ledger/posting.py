"""Publishing, editing and deleting posts and comments."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .broadcast import submit_operations
from .config import Settings, settings as default_settings
from .confirmation import TransactionConfirmationPoller
from .errors import ErrorKind, ValidationError
from .interfaces import NodeReader, SigningProvider
from .logging_setup import get_logger
from .models import (
    BroadcastResult,
    CommentIntent,
    DeleteIntent,
    PostIntent,
    PublishResult,
    ResourceCreditStatus,
    UpdateIntent,
    ValidationResult,
)
from .operations import (
    MAX_BODY_LENGTH,
    MAX_TITLE_LENGTH,
    build_comment_metadata,
    build_post_metadata,
    create_comment_operation,
    create_comment_options_operation,
    format_json_metadata,
    generate_permlink,
    generate_reply_permlink,
    parse_json_metadata,
)
from .resource_credits import ResourceCreditGuard

log = get_logger(__name__)

MAX_TAGS = 5


def validate_post_data(intent: PostIntent) -> ValidationResult:
    """Collect every structural problem with ``intent`` at once."""
    errors: List[str] = []

    if not intent.title or not intent.title.strip():
        errors.append("Title is required")
    if not intent.body or not intent.body.strip():
        errors.append("Body is required")
    if intent.title and len(intent.title) > MAX_TITLE_LENGTH:
        errors.append(f"Title is too long (max {MAX_TITLE_LENGTH} characters)")
    if intent.body and len(intent.body) > MAX_BODY_LENGTH:
        errors.append(f"Body is too long (max {MAX_BODY_LENGTH} characters)")
    if not intent.author or not intent.author.strip():
        errors.append("Author is required")
    if intent.tags and len(intent.tags) > MAX_TAGS:
        errors.append(f"Too many tags (max {MAX_TAGS})")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_comment_data(intent: CommentIntent) -> ValidationResult:
    errors: List[str] = []

    if not intent.body or not intent.body.strip():
        errors.append("Body is required")
    if intent.body and len(intent.body) > MAX_BODY_LENGTH:
        errors.append(f"Body is too long (max {MAX_BODY_LENGTH} characters)")
    if not intent.author or not intent.author.strip():
        errors.append("Author is required")
    if not intent.parent_author or not intent.parent_permlink:
        errors.append("Parent author and permlink are required")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_update_data(intent: UpdateIntent) -> ValidationResult:
    """Length limits on the fields an edit replaces; omitted fields are kept as is."""
    errors: List[str] = []

    if intent.title is not None and len(intent.title) > MAX_TITLE_LENGTH:
        errors.append(f"Title is too long (max {MAX_TITLE_LENGTH} characters)")
    if intent.body is not None and len(intent.body) > MAX_BODY_LENGTH:
        errors.append(f"Body is too long (max {MAX_BODY_LENGTH} characters)")

    return ValidationResult(is_valid=not errors, errors=errors)


class PostBroadcaster:
    def __init__(
        self,
        node: NodeReader,
        provider: Optional[SigningProvider] = None,
        rc_guard: Optional[ResourceCreditGuard] = None,
        poller: Optional[TransactionConfirmationPoller] = None,
        config: Settings = default_settings,
        clock: Callable[[], float] = time.time,
    ):
        self.node = node
        self.provider = provider
        self.rc_guard = rc_guard or ResourceCreditGuard(node, config, clock)
        self.poller = poller
        self.config = config
        self.clock = clock

    def validate_post_data(self, intent: PostIntent) -> ValidationResult:
        return validate_post_data(intent)

    def post_url(self, author: str, permlink: str) -> str:
        return f"{self.config.post_url_base}/@{author}/{permlink}"

    # ------------------------------------------------------------------ #
    # Resource Credits
    # ------------------------------------------------------------------ #
    async def can_user_post(self, username: str) -> ResourceCreditStatus:
        return await self.rc_guard.can_user_post(username)

    def get_estimated_rc_cost(self, body_length: int) -> int:
        return self.rc_guard.get_estimated_rc_cost(body_length)

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #
    async def publish_post(
        self,
        intent: PostIntent,
        provider: Optional[SigningProvider] = None,
        wait_for_confirmation: bool = False,
    ) -> PublishResult:
        validation = validate_post_data(intent)
        if not validation.is_valid:
            return _validation_failure(validation.errors)

        blocked = await self.rc_guard.require_post_budget(intent.author)
        if blocked is not None:
            return PublishResult.failed(blocked.message or "Insufficient Resource Credits",
                                        ErrorKind.INSUFFICIENT_RESOURCE_CREDITS)

        permlink = generate_permlink(intent.title, now_ms=int(self.clock() * 1000))
        metadata = build_post_metadata(
            tags=intent.tags,
            sport_category=intent.sport_category,
            featured_image=intent.featured_image,
            sub_community=intent.sub_community,
            extra=intent.json_metadata,
            config=self.config,
        )
        try:
            operations = [
                create_comment_operation(
                    author=intent.author,
                    permlink=permlink,
                    title=intent.title,
                    body=intent.body,
                    parent_author=intent.parent_author or "",
                    parent_permlink=intent.parent_permlink or self.config.community_id,
                    json_metadata=format_json_metadata(metadata),
                ),
                create_comment_options_operation(
                    author=intent.author,
                    permlink=permlink,
                    beneficiaries=intent.beneficiaries,
                    config=self.config,
                ),
            ]
        except ValidationError as e:
            return _validation_failure(e.errors)

        log.info("post_publishing", author=intent.author, permlink=permlink, tags=metadata["tags"])
        result = await submit_operations(
            provider or self.provider,
            operations,
            label="post",
            poller=self.poller,
            wait_for_confirmation=wait_for_confirmation,
        )
        return self._publish_result(result, intent.author, permlink)

    async def publish_comment(
        self,
        intent: CommentIntent,
        provider: Optional[SigningProvider] = None,
        wait_for_confirmation: bool = False,
    ) -> PublishResult:
        validation = validate_comment_data(intent)
        if not validation.is_valid:
            return _validation_failure(validation.errors)

        blocked = await self.rc_guard.require_post_budget(intent.author)
        if blocked is not None:
            return PublishResult.failed(blocked.message or "Insufficient Resource Credits",
                                        ErrorKind.INSUFFICIENT_RESOURCE_CREDITS)

        permlink = generate_reply_permlink(
            intent.parent_author, intent.parent_permlink, now_ms=int(self.clock() * 1000)
        )
        operation = create_comment_operation(
            author=intent.author,
            permlink=permlink,
            body=intent.body,
            parent_author=intent.parent_author,
            parent_permlink=intent.parent_permlink,
            json_metadata=format_json_metadata(build_comment_metadata(intent.json_metadata, self.config)),
        )

        log.info("comment_publishing", author=intent.author, permlink=permlink,
                 parent_author=intent.parent_author, parent_permlink=intent.parent_permlink)
        result = await submit_operations(
            provider or self.provider,
            [operation],
            label="comment",
            poller=self.poller,
            wait_for_confirmation=wait_for_confirmation,
        )
        return self._publish_result(result, intent.author, permlink)

    # ------------------------------------------------------------------ #
    # Edits
    # ------------------------------------------------------------------ #
    async def update_post(self, intent: UpdateIntent, provider: Optional[SigningProvider] = None) -> PublishResult:
        """Edit a post within the edit window, merging metadata into the existing one."""
        validation = validate_update_data(intent)
        if not validation.is_valid:
            return _validation_failure(validation.errors)

        try:
            existing = await self.node.call("condenser_api.get_content", [intent.author, intent.permlink])
        except Exception as e:
            log.error("update_read_failed", author=intent.author, permlink=intent.permlink, error=str(e))
            return PublishResult.failed(str(e), ErrorKind.READ_FAILURE)

        if not existing or not existing.get("author"):
            return PublishResult.failed("Post not found", ErrorKind.VALIDATION)

        created = _parse_chain_time(existing.get("created"))
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        if created is None or now - created > timedelta(days=self.config.edit_window_days):
            return PublishResult.failed(
                f"Post cannot be updated after {self.config.edit_window_days} days", ErrorKind.VALIDATION
            )

        merged: Dict = {
            **parse_json_metadata(existing.get("json_metadata")),
            **(intent.json_metadata or {}),
        }
        body = existing.get("body", "") if intent.body is None else intent.body
        operation = create_comment_operation(
            author=intent.author,
            permlink=intent.permlink,
            title=intent.title or existing.get("title", ""),
            body=body,
            parent_author=existing.get("parent_author", ""),
            parent_permlink=existing.get("parent_permlink", ""),
            json_metadata=format_json_metadata(merged),
        )

        log.info("post_updating", author=intent.author, permlink=intent.permlink, emptied=body == "")
        result = await submit_operations(provider or self.provider, [operation], label="update")
        return self._publish_result(result, intent.author, intent.permlink)

    async def delete_post(self, intent: DeleteIntent, provider: Optional[SigningProvider] = None) -> PublishResult:
        """Empty the body; the ledger keeps the post addressable."""
        return await self.update_post(
            UpdateIntent(
                author=intent.author,
                permlink=intent.permlink,
                body="",
                json_metadata={"app": self.config.app_tag, "tags": ["deleted", self.config.app_name]},
            ),
            provider,
        )

    def _publish_result(self, result: BroadcastResult, author: str, permlink: str) -> PublishResult:
        if not result.success:
            return PublishResult(
                success=False,
                transaction_id=result.transaction_id,
                error=result.error,
                error_kind=result.error_kind,
                confirmation=result.confirmation,
            )
        return PublishResult(
            success=True,
            transaction_id=result.transaction_id,
            error=result.error,
            error_kind=result.error_kind,
            confirmation=result.confirmation,
            author=author,
            permlink=permlink,
            url=self.post_url(author, permlink),
        )


def _validation_failure(errors: List[str]) -> PublishResult:
    return PublishResult(
        success=False,
        error=f"Post validation failed: {', '.join(errors)}",
        error_kind=ErrorKind.VALIDATION,
        errors=list(errors),
    )


def _parse_chain_time(value: Optional[str]) -> Optional[datetime]:
    """Chain timestamps are UTC without a zone suffix."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
