"""
Core appender components.

This package contains the Logstash appender and its collaborators:
- Entry channel and the Appender capability
- Limiting writer decorators
- Socket transport
- Metrics registry
"""
