"""
URL configuration for storefront project.
"""
from django.urls import include, path

from main.api.graphql import graphql_view

urlpatterns = [
    path('api/', include('main.api.urls')),
    path('graphql/', graphql_view, name='graphql'),
]
