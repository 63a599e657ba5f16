from gymbook.access.guest_access import GuestAccess

__all__ = ["GuestAccess"]
