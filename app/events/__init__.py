"""
Upcoming events for the club.

- taxonomy: event types and the blog categories that map onto them
- feed: the merged events listing built from calendar events and blog posts
"""
