"""
User profiles, Appwrite session verification and current principal resolution.
"""
