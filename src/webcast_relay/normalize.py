"""
Payload normalization — flattens decoded protobuf dicts into the shape handed
to consumers. Nested `user` structures never reach consumers as-is.
"""

from typing import Any, Optional

from webcast_relay.schema import definitions as types

# badgeSceneType values
SCENE_MODERATOR = 1
SCENE_SUBSCRIBER = {4, 7}
SCENE_GIFTER = 8


def profile_picture_url(urls: Optional[list[str]]) -> Optional[str]:
    """Prefer the 100x100 variant, then any non-shrunk URL, then the first."""
    if not urls:
        return None
    for url in urls:
        if "100x100" in url:
            return url
    for url in urls:
        if "shrink" not in url:
            return url
    return urls[0]


def parse_user_badges(badges: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    simplified: list[dict[str, Any]] = []
    for group in badges or []:
        scene = group.get("badgeSceneType")
        privilege = group.get("privilegeLogExtra") or {}
        level = privilege.get("level")
        if level and level != "0":
            try:
                level_value = int(level)
            except ValueError:
                level_value = None
            simplified.append({
                "type": "privilege",
                "badgeSceneType": scene,
                "privilegeId": privilege.get("privilegeId"),
                "level": level_value,
            })
        for image_badge in group.get("imageBadges") or []:
            url = (image_badge.get("image") or {}).get("url")
            if url:
                simplified.append({"type": "image", "badgeSceneType": scene, "url": url})
        for text_badge in group.get("badges") or []:
            if text_badge.get("name") or text_badge.get("type"):
                simplified.append({
                    "type": text_badge.get("type") or "text",
                    "badgeSceneType": scene,
                    "name": text_badge.get("name"),
                })
    return simplified


def parse_user(user: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not user:
        return {}
    badges = parse_user_badges(user.get("badges"))
    gifter = next((b for b in badges if b["badgeSceneType"] == SCENE_GIFTER and b.get("level")), None)
    follow_info = user.get("followInfo") or {}
    user_id = user.get("userId")
    return {
        "userId": str(user_id) if user_id else None,
        "secUid": user.get("secUid") or None,
        "uniqueId": user.get("uniqueId") or None,
        "nickname": user.get("nickname") or None,
        "profilePictureUrl": profile_picture_url((user.get("profilePicture") or {}).get("urls")),
        "followRole": follow_info.get("followStatus"),
        "userBadges": badges,
        "isModerator": any(b["badgeSceneType"] == SCENE_MODERATOR for b in badges),
        "isSubscriber": any(b["badgeSceneType"] in SCENE_SUBSCRIBER for b in badges),
        "gifterLevel": gifter["level"] if gifter else 0,
    }


def _emote(emote: Optional[dict[str, Any]]) -> dict[str, Any]:
    emote = emote or {}
    return {
        "emoteId": emote.get("emoteId") or None,
        "emoteImageUrl": (emote.get("image") or {}).get("imageUrl") or None,
    }


def _flatten_event_header(data: dict[str, Any]) -> None:
    event = data.pop("event", None)
    if event is None:
        return
    details = event.get("eventDetails") or {}
    data["msgId"] = str(event["msgId"]) if event.get("msgId") else None
    data["createTime"] = str(event["createTime"]) if event.get("createTime") else None
    data["displayType"] = details.get("displayType") or None
    data["label"] = details.get("label") or None


def _flatten_user(data: dict[str, Any]) -> None:
    if "user" in data:
        data.update(parse_user(data.pop("user")))


def _normalize_gift(data: dict[str, Any]) -> None:
    details = data.pop("giftDetails", None) or {}
    extra = data.pop("giftExtra", None) or {}
    data["repeatEnd"] = bool(data.get("repeatEnd"))
    data["giftName"] = details.get("giftName") or None
    data["describe"] = details.get("describe") or None
    data["giftType"] = details.get("giftType")
    data["diamondCount"] = details.get("diamondCount")
    data["giftPictureUrl"] = (details.get("giftImage") or {}).get("giftPictureUrl") or None
    data["timestamp"] = extra.get("timestamp")
    data["receiverUserId"] = str(extra["receiverUserId"]) if extra.get("receiverUserId") else None
    data["gift"] = {
        "gift_id": data.get("giftId"),
        "repeat_count": data.get("repeatCount"),
        "repeat_end": data["repeatEnd"],
        "gift_type": data["giftType"],
    }


def _social_type(display_type: Optional[str]) -> Optional[str]:
    if not display_type:
        return None
    if "follow" in display_type:
        return "follow"
    if "share" in display_type:
        return "share"
    return None


def normalize_payload(message_type: str, decoded: dict[str, Any]) -> dict[str, Any]:
    """Return a flattened copy of `decoded` for the given sub-message type."""
    data = dict(decoded)
    _flatten_event_header(data)

    if message_type == types.GIFT:
        _normalize_gift(data)
    elif message_type == types.CHAT:
        data["emotes"] = [
            {"placeInComment": item.get("placeInComment"), **_emote(item.get("emote"))}
            for item in data.get("emotes") or []
        ]
    elif message_type == types.EMOTE_CHAT:
        data.update(_emote(data.pop("emote", None)))
    elif message_type == types.SOCIAL:
        data["socialType"] = _social_type(data.get("displayType"))
    elif message_type == types.QUESTION_NEW:
        details = data.pop("questionDetails", None) or {}
        data["questionText"] = details.get("questionText") or None
        data.update(parse_user(details.get("user")))
    elif message_type == types.ROOM_USER_SEQ:
        data["topViewers"] = [
            {"coinCount": viewer.get("coinCount"), **parse_user(viewer.get("user"))}
            for viewer in data.get("topViewers") or []
        ]
    elif message_type == types.LINK_MIC_BATTLE:
        data["battleUsers"] = [
            parse_user((item.get("battleGroup") or {}).get("user"))
            for item in data.get("battleUsers") or []
        ]
    elif message_type == types.LINK_MIC_ARMIES:
        data["battleArmies"] = [
            {
                "hostUserId": str(item.get("hostUserId")),
                "points": sum(group.get("points") or 0 for group in item.get("battleGroups") or []),
                "participants": [
                    parse_user(user)
                    for group in item.get("battleGroups") or []
                    for user in group.get("users") or []
                ],
            }
            for item in data.pop("battleItems", None) or []
        ]
    elif message_type == types.ENVELOPE:
        box = data.pop("treasureBoxData", None) or {}
        holder = data.pop("treasureBoxUser", None) or {}
        entries = (holder.get("user2") or {}).get("user3") or []
        sender = (entries[0].get("user4") or {}).get("user") if entries else None
        data["coins"] = box.get("coins")
        data["canOpen"] = box.get("canOpen")
        data["timestamp"] = box.get("timestamp")
        data.update(parse_user(sender))

    _flatten_user(data)
    return data
