"""
Fixed webcast message layouts.

Field numbers are dictated by the upstream protocol. `kind` is either a scalar
type name or the name of another message in this table.
"""

from typing import NamedTuple


class FieldDef(NamedTuple):
    name: str
    number: int
    kind: str
    repeated: bool = False


SCALAR_KINDS = {"string", "bytes", "bool", "int32", "int64", "uint32", "uint64"}

# Transport-level types
WEBSOCKET_MESSAGE = "WebcastWebsocketMessage"
WEBSOCKET_ACK = "WebcastWebsocketAck"
RESPONSE = "WebcastResponse"

# Sub-message types carried inside a WebcastResponse
CONTROL = "WebcastControlMessage"
ROOM_USER_SEQ = "WebcastRoomUserSeqMessage"
CHAT = "WebcastChatMessage"
MEMBER = "WebcastMemberMessage"
GIFT = "WebcastGiftMessage"
SOCIAL = "WebcastSocialMessage"
LIKE = "WebcastLikeMessage"
QUESTION_NEW = "WebcastQuestionNewMessage"
LINK_MIC_BATTLE = "WebcastLinkMicBattle"
LINK_MIC_ARMIES = "WebcastLinkMicArmies"
LIVE_INTRO = "WebcastLiveIntroMessage"
EMOTE_CHAT = "WebcastEmoteChatMessage"
ENVELOPE = "WebcastEnvelopeMessage"
SUB_NOTIFY = "WebcastSubNotifyMessage"

SUB_MESSAGE_TYPES = frozenset({
    CONTROL, ROOM_USER_SEQ, CHAT, MEMBER, GIFT, SOCIAL, LIKE, QUESTION_NEW,
    LINK_MIC_BATTLE, LINK_MIC_ARMIES, LIVE_INTRO, EMOTE_CHAT, ENVELOPE, SUB_NOTIFY,
})

# Fields that must be present before a message of that type is encoded
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    WEBSOCKET_ACK: ("type", "id"),
}

MESSAGES: dict[str, tuple[FieldDef, ...]] = {
    # --- transport ---
    WEBSOCKET_MESSAGE: (
        FieldDef("id", 2, "uint64"),
        FieldDef("type", 7, "string"),
        FieldDef("binary", 8, "bytes"),
    ),
    WEBSOCKET_ACK: (
        FieldDef("id", 2, "uint64"),
        FieldDef("type", 7, "string"),
    ),
    RESPONSE: (
        FieldDef("messages", 1, "Message", repeated=True),
        FieldDef("cursor", 2, "string"),
        FieldDef("fetchInterval", 3, "int32"),
        FieldDef("serverTimestamp", 4, "int64"),
        FieldDef("internalExt", 5, "string"),
        FieldDef("fetchType", 6, "int32"),
        FieldDef("wsParam", 7, "WebsocketParam"),
        FieldDef("heartbeatDuration", 8, "int32"),
        FieldDef("needAck", 9, "bool"),
        FieldDef("wsUrl", 10, "string"),
    ),
    "Message": (
        FieldDef("type", 1, "string"),
        FieldDef("binary", 2, "bytes"),
    ),
    "WebsocketParam": (
        FieldDef("name", 1, "string"),
        FieldDef("value", 2, "string"),
    ),

    # --- shared structures ---
    "WebcastMessageEvent": (
        FieldDef("msgId", 2, "uint64"),
        FieldDef("createTime", 4, "uint64"),
        FieldDef("eventDetails", 8, "WebcastMessageEventDetails"),
    ),
    "WebcastMessageEventDetails": (
        FieldDef("displayType", 1, "string"),
        FieldDef("label", 2, "string"),
    ),
    "User": (
        FieldDef("userId", 1, "uint64"),
        FieldDef("nickname", 3, "string"),
        FieldDef("bioDescription", 5, "string"),
        FieldDef("profilePicture", 9, "ProfilePicture"),
        FieldDef("createTime", 16, "uint64"),
        FieldDef("followInfo", 22, "FollowInfo"),
        FieldDef("uniqueId", 38, "string"),
        FieldDef("secUid", 46, "string"),
        FieldDef("badges", 64, "UserBadgesAttributes", repeated=True),
    ),
    "ProfilePicture": (
        FieldDef("urls", 1, "string", repeated=True),
    ),
    "FollowInfo": (
        FieldDef("followingCount", 1, "int32"),
        FieldDef("followerCount", 2, "int32"),
        FieldDef("followStatus", 3, "int32"),
        FieldDef("pushStatus", 4, "int32"),
    ),
    "UserBadgesAttributes": (
        FieldDef("badgeSceneType", 3, "int32"),
        FieldDef("privilegeLogExtra", 12, "PrivilegeLogExtra"),
        FieldDef("imageBadges", 20, "UserImageBadge", repeated=True),
        FieldDef("badges", 21, "UserBadge", repeated=True),
    ),
    "PrivilegeLogExtra": (
        FieldDef("privilegeId", 2, "string"),
        FieldDef("level", 5, "string"),
    ),
    "UserBadge": (
        FieldDef("type", 2, "string"),
        FieldDef("name", 3, "string"),
    ),
    "UserImageBadge": (
        FieldDef("displayType", 1, "int32"),
        FieldDef("image", 2, "UserImageBadgeImage"),
    ),
    "UserImageBadgeImage": (
        FieldDef("url", 1, "string"),
    ),
    "EmoteDetails": (
        FieldDef("emoteId", 1, "string"),
        FieldDef("image", 2, "EmoteImage"),
    ),
    "EmoteImage": (
        FieldDef("imageUrl", 1, "string"),
    ),

    # --- sub-messages ---
    CONTROL: (
        FieldDef("action", 2, "int32"),
    ),
    ROOM_USER_SEQ: (
        FieldDef("topViewers", 2, "TopUser", repeated=True),
        FieldDef("viewerCount", 3, "int32"),
    ),
    "TopUser": (
        FieldDef("coinCount", 1, "uint64"),
        FieldDef("user", 2, "User"),
    ),
    CHAT: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("user", 2, "User"),
        FieldDef("comment", 3, "string"),
        FieldDef("emotes", 13, "WebcastSubEmote", repeated=True),
    ),
    "WebcastSubEmote": (
        FieldDef("placeInComment", 1, "int32"),
        FieldDef("emote", 2, "EmoteDetails"),
    ),
    EMOTE_CHAT: (
        FieldDef("user", 2, "User"),
        FieldDef("emote", 3, "EmoteDetails"),
    ),
    MEMBER: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("user", 2, "User"),
        FieldDef("actionId", 10, "int32"),
    ),
    GIFT: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("giftId", 2, "int32"),
        FieldDef("repeatCount", 5, "int32"),
        FieldDef("user", 7, "User"),
        FieldDef("repeatEnd", 9, "int32"),
        FieldDef("groupId", 11, "uint64"),
        FieldDef("giftDetails", 15, "WebcastGiftMessageGiftDetails"),
        FieldDef("monitorExtra", 22, "string"),
        FieldDef("giftExtra", 23, "WebcastGiftMessageGiftExtra"),
    ),
    "WebcastGiftMessageGiftDetails": (
        FieldDef("giftImage", 1, "WebcastGiftMessageGiftImage"),
        FieldDef("describe", 2, "string"),
        FieldDef("giftType", 11, "int32"),
        FieldDef("diamondCount", 12, "int32"),
        FieldDef("giftName", 16, "string"),
    ),
    "WebcastGiftMessageGiftImage": (
        FieldDef("giftPictureUrl", 1, "string"),
    ),
    "WebcastGiftMessageGiftExtra": (
        FieldDef("timestamp", 6, "uint64"),
        FieldDef("receiverUserId", 8, "uint64"),
    ),
    SOCIAL: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("user", 2, "User"),
    ),
    LIKE: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("likeCount", 2, "int32"),
        FieldDef("totalLikeCount", 3, "int32"),
        FieldDef("user", 5, "User"),
    ),
    QUESTION_NEW: (
        FieldDef("questionDetails", 2, "QuestionDetails"),
    ),
    "QuestionDetails": (
        FieldDef("questionText", 2, "string"),
        FieldDef("user", 5, "User"),
    ),
    LINK_MIC_BATTLE: (
        FieldDef("battleUsers", 10, "WebcastLinkMicBattleItems", repeated=True),
    ),
    "WebcastLinkMicBattleItems": (
        FieldDef("battleGroup", 2, "WebcastLinkMicBattleGroup"),
    ),
    "WebcastLinkMicBattleGroup": (
        FieldDef("user", 1, "LinkUser"),
    ),
    "LinkUser": (
        FieldDef("userId", 1, "uint64"),
        FieldDef("nickname", 2, "string"),
        FieldDef("profilePicture", 3, "ProfilePicture"),
        FieldDef("uniqueId", 4, "string"),
    ),
    LINK_MIC_ARMIES: (
        FieldDef("battleItems", 3, "WebcastLinkMicArmiesItems", repeated=True),
        FieldDef("battleStatus", 7, "int32"),
    ),
    "WebcastLinkMicArmiesItems": (
        FieldDef("hostUserId", 1, "uint64"),
        FieldDef("battleGroups", 2, "WebcastLinkMicArmiesGroup", repeated=True),
    ),
    "WebcastLinkMicArmiesGroup": (
        FieldDef("users", 1, "User", repeated=True),
        FieldDef("points", 2, "int32"),
    ),
    LIVE_INTRO: (
        FieldDef("id", 2, "uint64"),
        FieldDef("description", 4, "string"),
        FieldDef("user", 5, "User"),
    ),
    ENVELOPE: (
        FieldDef("treasureBoxUser", 1, "TreasureBoxUser"),
        FieldDef("treasureBoxData", 2, "TreasureBoxData"),
    ),
    "TreasureBoxUser": (
        FieldDef("user2", 8, "TreasureBoxUser2"),
    ),
    "TreasureBoxUser2": (
        FieldDef("user3", 4, "TreasureBoxUser3", repeated=True),
    ),
    "TreasureBoxUser3": (
        FieldDef("user4", 21, "TreasureBoxUser4"),
    ),
    "TreasureBoxUser4": (
        FieldDef("user", 1, "User"),
    ),
    "TreasureBoxData": (
        FieldDef("coins", 5, "uint32"),
        FieldDef("canOpen", 6, "uint32"),
        FieldDef("timestamp", 7, "uint64"),
    ),
    SUB_NOTIFY: (
        FieldDef("event", 1, "WebcastMessageEvent"),
        FieldDef("user", 2, "User"),
        FieldDef("exhibitionType", 3, "int32"),
        FieldDef("subMonth", 4, "int32"),
        FieldDef("subscribeType", 5, "int32"),
        FieldDef("oldSubscribeStatus", 6, "int32"),
        FieldDef("subscribingStatus", 8, "int32"),
    ),
}
