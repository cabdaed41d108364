from django.urls import path
from . import views

urlpatterns = [
    path('mpesa/initiate/', views.mpesa_initiate, name='mpesa_initiate'),
    path('mpesa/callback/', views.mpesa_callback, name='mpesa_callback'),
    path('mpesa/query/', views.mpesa_query, name='mpesa_query'),
    path('transactions/', views.transactions_list, name='transactions_list'),
    path('<uuid:transaction_id>/status/', views.payment_status, name='payment_status'),
]
