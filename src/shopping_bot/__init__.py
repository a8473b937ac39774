"""
Shopping List Bot (Lambda + LINE + DynamoDB)

Where: AWS Lambda via Function URL (LINE Messaging API webhook target).
What:  Classify short chat commands, read/update one shared list table, reply.
Why:   A family-sized shopping list without running a server.
"""

__all__ = [
    "config",
    "handler",
    "commands",
    "line",
    "store",
]
