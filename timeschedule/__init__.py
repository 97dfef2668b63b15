"""
timeschedule: crawl a course time schedule into a double-buffered SQLite store.
"""
