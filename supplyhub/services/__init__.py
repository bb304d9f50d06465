"""Business services for the quote, delivery, notification and payment workflows."""
