from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('api/auth/', include('accounts.urls')),
    path('api/payments/', include('payments.urls')),
    path('api/', include('api.urls')),
    path('admin/', admin.site.urls),  # Keep this last
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
