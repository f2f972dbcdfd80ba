# Helpers - Utility Functions
# Small utilities shared by the gateway and connection layers

"""
Helpers Module

Provides utility functions for:
- Credential masking in logs
- Wall clock and monotonic timestamps
"""

import time

def mask_token(token: str, visible: int = 6) -> str:
    """
    Mask a credential for logging
    
    Args:
        token: Secret token
        visible: Number of leading characters to keep
        
    Returns:
        Masked string (e.g., "MTIzND...")
    """
    if not token:
        return "<empty>"
    if len(token) <= visible:
        return "*" * len(token)
    return f"{token[:visible]}..."

def unix_seconds() -> int:
    """Current unix time in whole seconds"""
    return int(time.time())

def monotonic_ms() -> float:
    """Monotonic clock in milliseconds"""
    return time.monotonic() * 1000.0
