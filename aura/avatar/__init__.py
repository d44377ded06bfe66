"""
Aura avatars — prompt building, vendor adapters and the generation pipeline.

Architecture:
  The router stays thin.  ``AvatarService`` owns one generation run:
  entitlement check, orchestrated vendor fallback, derivative fan-out,
  persistence and the credit commit.
"""
