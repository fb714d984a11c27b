"""
ReelChef - recipe extraction from social media posts.

Turns an Instagram or TikTok post into a structured recipe:
- Web path: headless page fetch + multimodal structuring
- Video path: video download + multimodal video analysis (fallback)
"""

__version__ = "1.0.0"
