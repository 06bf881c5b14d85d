"""
Data source collaborators: the remote API transport and artifact storage.
"""
