"""
Professor Connect - research outreach to professors.

Find professors matching a research interest, review an AI-drafted
introduction email, and send or schedule it through the user's Gmail
account, keeping a history of every attempt.
"""

__version__ = "0.1.0"
