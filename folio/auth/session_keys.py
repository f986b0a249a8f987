"""Session keys shared with the authentication service that issues sessions."""

SESSION_USER_ID = "user_id"
