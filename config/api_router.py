from django.conf import settings
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from job_portal.conversations.api.views import ConversationViewSet
from job_portal.conversations.api.views import MessageViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("conversations", ConversationViewSet, basename="conversation")
router.register("messages", MessageViewSet, basename="message")


app_name = "api"
urlpatterns = router.urls
