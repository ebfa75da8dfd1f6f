from django.urls import path
from . import views

urlpatterns = [
    path('projects', views.ProjectListView.as_view()),
    path('projects/<str:pk>', views.ProjectDetailView.as_view()),
    path('projects/<str:pk>/members', views.ProjectMembersView.as_view()),
    path('tasks', views.TaskListView.as_view()),
    path('tasks/<str:pk>', views.TaskDetailView.as_view()),
    path('comments', views.CommentListView.as_view()),
    path('comments/<str:pk>', views.CommentDetailView.as_view()),
]
