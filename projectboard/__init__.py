"""Backend package for the student/project marketplace.

Holds the catalog reconciler, the relevance search core, domain services and
the FastAPI app that exposes them.
"""
