from django.contrib import admin
from django.urls import include, path

admin.site.site_header = "ShopVely Admin"
admin.site.site_title = "ShopVely Admin Portal"

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("users.urls")),
    path("api/", include("shop.urls")),
    path("api/", include("loyalty.urls")),
]
