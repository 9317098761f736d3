"""
Registry access: reference parsing, the OciRegistry protocol and its
httpx implementation.
"""
