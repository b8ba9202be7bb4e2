ROLE_CUSTOMER = "CUSTOMER"
ROLE_ADMIN = "ADMIN"
ROLE_SUPER_ADMIN = "SUPER_ADMIN"

ROLES = {
    ROLE_CUSTOMER: "Customer",
    ROLE_ADMIN: "Admin",
    # only a super admin may manage admins or other super admins
    ROLE_SUPER_ADMIN: "Super admin",
}

ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)

PLACEHOLDER_IMAGE_URL = "https://placehold.co/96x96/E0E0E0/333333?text=No+Img"

MIN_PASSWORD_LENGTH = 6
