"""
RabbitMQ admin console resource cache.

Client-side caching and refresh coordination in front of the console's
paginated RabbitMQ resource API.
"""

__version__ = "1.0.0"
