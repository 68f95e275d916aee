# Conversation states (one active per contact key)

# Nothing in progress; messages go to custom flows / quick replies.
IDLE = "IDLE"

# Phone-app flow: waiting for a screenshot showing the device identifier.
AWAITING_IDENTIFIER_PROOF = "AWAITING_IDENTIFIER_PROOF"

# Lazer flow: waiting for a photo of the TV screen.
AWAITING_PHOTO = "AWAITING_PHOTO"

# Lazer flow: the list screen was seen, waiting for the playlist click.
AWAITING_PLAYLIST_CLICK = "AWAITING_PLAYLIST_CLICK"

# Operator-defined stage sequence.
CUSTOM_FLOW = "CUSTOM_FLOW"



# Flows that can own a pending identifier request
PENDING_FLOW_IBO = "IBO"
PENDING_FLOW_CELULAR = "CELULAR"
