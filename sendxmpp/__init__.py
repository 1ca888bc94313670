"""sendxmpp — send stdin as XMPP chat messages, optionally OpenPGP-encrypted."""

__version__ = "0.2.0"
