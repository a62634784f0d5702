"""Listing workflows that can run synchronously or from the job worker."""
