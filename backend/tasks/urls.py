"""
URL configuration for the tasks app.
"""

from django.urls import path
from . import views

urlpatterns = [
    path('', views.api_info, name='api-info'),
    path('tasks/score/', views.score_tasks, name='score-tasks'),
    path('tasks/suggest/', views.suggest_tasks, name='suggest-tasks'),
    # Lifecycle
    path('tasks/complete/', views.complete_task, name='complete-task'),
    path('tasks/reopen/', views.reopen_task, name='reopen-task'),
    path('tasks/status/', views.change_status, name='change-status'),
    path('tasks/assign-project/', views.assign_project, name='assign-project'),
    path('tasks/release-ready/', views.release_ready, name='release-ready'),
    # Dependencies
    path('tasks/dependencies/add/', views.add_dependency, name='add-dependency'),
    path('tasks/dependencies/remove/', views.remove_dependency, name='remove-dependency'),
    path('tasks/dependencies/set/', views.set_dependencies, name='set-dependencies'),
    path('tasks/dependencies/analyze/', views.analyze_dependencies, name='analyze-dependencies'),
    # Recurrence
    path('tasks/recurrence/preview/', views.preview_recurrence, name='preview-recurrence'),
]
