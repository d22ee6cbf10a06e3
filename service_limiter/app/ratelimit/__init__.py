"""
Rate limiting package.

Holds the distributed token bucket limiters and the strategies used to name
the bucket shared by cooperating processes.
"""
