"""
REST routes under ``/api/``.
"""
from django.urls import path

from main.api import views

urlpatterns = [
    path('coins', views.coins, name='coins'),
    path('admin/coins', views.admin_coins, name='admin-coins'),
    path('notifications', views.notifications, name='notifications'),
    path('admin/notifications', views.admin_notifications, name='admin-notifications'),
    path('products', views.products, name='products'),
    path('products/stock', views.product_stock, name='product-stock'),
    path('products/<str:product_id>', views.product_detail, name='product-detail'),
    path('admin/products', views.admin_products, name='admin-products'),
    path('admin/products/<str:product_id>', views.admin_product_detail, name='admin-product-detail'),
    path('orders', views.orders, name='orders'),
    path('orders/customer/<str:email>', views.customer_orders, name='customer-orders'),
    path('orders/<str:order_id>', views.order_detail, name='order-detail'),
]
