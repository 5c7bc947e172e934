from django.urls import path
from . import views

app_name = 'fasting'

urlpatterns = [
    path('api/fast/state/', views.fast_state, name='state'),
    path('api/fast/start/', views.start_fast, name='start'),
    path('api/fast/stop/', views.stop_fast, name='stop'),
    path('api/fast/active/start-time/', views.edit_active_start, name='edit_active_start'),
    path('api/fast/log/', views.log_fast, name='log_fast'),
    path('api/fast/history/', views.fast_history, name='history'),
    path('api/fast/goal/', views.set_goal, name='set_goal'),
    path('api/fast/streaks/', views.fast_streaks, name='streaks'),
    path('api/fast/health-sync/', views.health_sync, name='health_sync'),
    path('api/fast/export.csv', views.export_csv, name='export_csv'),
    path('api/fast/<str:session_id>/', views.edit_fast, name='edit'),
    path('api/fast/<str:session_id>/delete/', views.delete_fast, name='delete'),
]
