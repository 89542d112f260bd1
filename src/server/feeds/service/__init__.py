# -*- coding: utf-8 -*-
"""
订阅源服务模块

此模块提供订阅源相关的所有业务逻辑。
"""

from .url_service import normalize_feed_url
from .fetch_service import fetch_remote_text, fetch_feed_xml
from .parse_service import (
    parse_feed_text,
    parse_feed_with_cache,
    parse_feed_with_metadata,
    parse_feed,
)
from .discovery_service import discover_feed_candidates
from .dedup_service import compute_feed_item_fingerprint, identify_item
from .retention_service import (
    purge_old_feed_items_for_feed,
    purge_old_feed_items_for_owner,
)
from .refresh_service import (
    refresh_all_feeds_for_owner,
    create_feed_with_initial_items,
)
from .folder_service import (
    resolve_feed_folder_ids,
    normalize_folder_ids,
    get_feed_folder_ids,
    get_feed_folder_ids_map,
    set_feed_folders,
    add_feed_folders,
    list_folders,
    create_folder,
    rename_folder,
    delete_folder,
)
from .feed_service import (
    find_existing_feed_for_owner,
    subscribe_feed,
    preview_feed_candidates,
    list_feeds_for_owner,
    rename_feed,
    delete_feed,
    delete_uncategorized_feeds,
    move_uncategorized_feeds_to_folder,
)
from .item_service import (
    encode_item_cursor,
    decode_item_cursor,
    list_items_for_owner,
    mark_item_read,
    mark_all_items_read,
    set_item_saved,
)

__all__ = [
    "normalize_feed_url",
    "fetch_remote_text",
    "fetch_feed_xml",
    "parse_feed_text",
    "parse_feed_with_cache",
    "parse_feed_with_metadata",
    "parse_feed",
    "discover_feed_candidates",
    "compute_feed_item_fingerprint",
    "identify_item",
    "purge_old_feed_items_for_feed",
    "purge_old_feed_items_for_owner",
    "refresh_all_feeds_for_owner",
    "create_feed_with_initial_items",
    "resolve_feed_folder_ids",
    "normalize_folder_ids",
    "get_feed_folder_ids",
    "get_feed_folder_ids_map",
    "set_feed_folders",
    "add_feed_folders",
    "list_folders",
    "create_folder",
    "rename_folder",
    "delete_folder",
    "find_existing_feed_for_owner",
    "subscribe_feed",
    "preview_feed_candidates",
    "list_feeds_for_owner",
    "rename_feed",
    "delete_feed",
    "delete_uncategorized_feeds",
    "move_uncategorized_feeds_to_folder",
    "encode_item_cursor",
    "decode_item_cursor",
    "list_items_for_owner",
    "mark_item_read",
    "mark_all_items_read",
    "set_item_saved",
]
