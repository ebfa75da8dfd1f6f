from django.urls import re_path
from django.conf import settings

from teamboard import consumers


try:
    prefix = settings.TEAMBOARD_WS_URL_PREFIX
except AttributeError:
    prefix = ''

websocket_urlpatterns = [
    re_path(f'^{prefix}ws/$', consumers.ProjectConsumer.as_asgi()),
]
