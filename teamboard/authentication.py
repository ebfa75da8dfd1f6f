from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    """Accepts "Authorization: Bearer <key>" against DRF auth tokens"""
    keyword = 'Bearer'
