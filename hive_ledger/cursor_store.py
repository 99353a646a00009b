"""NATS Key-Value store for block cursor persistence."""

import json
from datetime import datetime, timezone
from typing import Optional

from nats.js import JetStreamContext
from nats.js.api import KeyValueConfig, StorageType

from .config import Settings, settings as default_settings
from .logging_setup import get_logger

logger = get_logger(__name__)


class BlockCursorStore:
    """Persists the last processed block number so a restart resumes there."""

    def __init__(self, js: JetStreamContext, config: Settings = default_settings):
        self.js = js
        self.kv = None
        self.config = config
        self.bucket_name = config.nats_kv_bucket
        self.service_key = f"{config.service_name}.cursor"

    async def initialize(self) -> None:
        """Open the bucket, creating it on first use."""
        try:
            self.kv = await self.js.key_value(self.bucket_name)
            logger.info("kv_exists", bucket=self.bucket_name)
        except Exception as e:
            logger.info("kv_not_found", bucket=self.bucket_name, error=str(e))
            kv_config = KeyValueConfig(
                bucket=self.bucket_name,
                description="Hive block cursor state",
                history=1,
                storage=StorageType.FILE,
                replicas=self.config.num_stream_replicas,
            )
            self.kv = await self.js.create_key_value(config=kv_config)
            logger.info("kv_created", bucket=self.bucket_name)

    async def save_cursor(self, block_num: int) -> bool:
        if not self.kv:
            logger.warning("kv_not_initialized")
            return False

        cursor_data = {
            "block_num": block_num,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.config.service_name,
        }
        try:
            await self.kv.put(self.service_key, json.dumps(cursor_data).encode("utf-8"))
        except Exception as e:
            logger.warning("kv_put_failed", block_num=block_num, error=str(e))
            return False

        logger.debug("cursor_saved", block_num=block_num, key=self.service_key)
        return True

    async def load_cursor(self) -> Optional[int]:
        if not self.kv:
            logger.warning("kv_not_initialized")
            return None

        try:
            entry = await self.kv.get(self.service_key)
        except Exception as e:
            # nats-py raises KeyNotFoundError for a fresh bucket
            logger.info("no_saved_cursor", key=self.service_key, error=str(e))
            return None

        if not entry or not entry.value:
            return None
        try:
            cursor_data = json.loads(entry.value.decode("utf-8"))
            block_num = int(cursor_data["block_num"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("cursor_unreadable", key=self.service_key, error=str(e))
            return None

        logger.info("cursor_loaded", block_num=block_num, saved_at=cursor_data.get("timestamp"))
        return block_num

    async def delete_cursor(self) -> bool:
        """Forget the saved position (next start follows the head again)."""
        if not self.kv:
            return False
        try:
            await self.kv.delete(self.service_key)
        except Exception as e:
            logger.error("cursor_delete_failed", error=str(e))
            return False
        logger.info("cursor_deleted", key=self.service_key)
        return True
