"""
Platform abstraction layer.

Provides the common message model and the transport contract each chat
platform (MS Teams, Slack, Mattermost, …) implements.
"""
