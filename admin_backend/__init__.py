"""
Admin backend package for the crowdfunding platform.

Provides interchangeable relational and document persistence, per-language
replication of reference data (dropdown options, sliders), a cached settings
store and a file-upload intake, exposed through a thin FastAPI surface.
"""
