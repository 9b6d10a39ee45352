REDIS_USER_KEY = "user:{user_id}" # hash - user document
REDIS_USER_EMAIL_KEY = "user:email:{email}" # string - lowercased email -> user id
REDIS_USERS_KEY = "users:all" # set of user IDs
REDIS_USER_CHATS_KEY = "user:chats:{user_id}" # set of chat IDs the user belongs to
REDIS_CHAT_KEY = "chat:{chat_id}" # hash - chat document
REDIS_CHAT_MESSAGES_KEY = "chat:messages:{chat_id}" # list of message IDs, oldest first
REDIS_MESSAGE_KEY = "message:{message_id}" # hash - message document

# Every hash field is stored JSON-encoded so values round-trip with their types.
#
# **Example `chat:{id}` hash fields**
# - `_id` = `"{chatId}"`
# - `chatName` = `"sender"` or group name
# - `isGroupChat` = `false`
# - `users` = `["{userId}", ...]`
# - `latestMessage` = `"{messageId}"` or `null`
# - `groupAdmin` = `"{userId}"` or `null`
# - `createdAt` / `updatedAt` = ISO timestamps
