from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Compra Coletiva Admin Panel"
admin.site.site_title = "Compra Coletiva Admin Portal"
admin.site.index_title = "Group-buying campaigns"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.campaigns.urls')),
    path('api/v1/', include('backend.orders.urls')),
    path('api/v1/', include('backend.campaign_messages.urls')),
    path('api/v1/', include('backend.notifications.urls')),
]
