from rest_framework import serializers
from .models import User, Project, ProjectMember, Task, Comment, is_object_id


# Canonical forms: what handlers return and what events carry

class UserSummarySerializer(serializers.ModelSerializer):

    class Meta:
        model = User
        fields = ('id', 'name', 'email', 'avatar')


class ProjectSummarySerializer(serializers.ModelSerializer):

    class Meta:
        model = Project
        fields = ('id', 'name')


class MemberSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer()
    joinedAt = serializers.DateTimeField(source='joined_at')

    class Meta:
        model = ProjectMember
        fields = ('user', 'role', 'joinedAt')


class ProjectSerializer(serializers.ModelSerializer):
    owner = UserSummarySerializer()
    members = MemberSerializer(many=True)
    startDate = serializers.DateTimeField(source='start_date')
    endDate = serializers.DateTimeField(source='end_date')
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')

    class Meta:
        model = Project
        fields = ('id', 'name', 'description', 'status', 'owner', 'members',
                  'startDate', 'endDate', 'createdAt', 'updatedAt')


class TaskSerializer(serializers.ModelSerializer):
    project = ProjectSummarySerializer()
    assignedTo = UserSummarySerializer(source='assigned_to')
    createdBy = UserSummarySerializer(source='created_by')
    dueDate = serializers.DateTimeField(source='due_date')
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')
    completedAt = serializers.DateTimeField(source='completed_at')

    class Meta:
        model = Task
        fields = ('id', 'title', 'description', 'project', 'assignedTo',
                  'createdBy', 'status', 'priority', 'dueDate', 'tags',
                  'attachments', 'createdAt', 'updatedAt', 'completedAt')


class CommentSerializer(serializers.ModelSerializer):
    task = serializers.CharField(source='task_id')
    author = UserSummarySerializer()
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')
    isEdited = serializers.BooleanField(source='is_edited')

    class Meta:
        model = Comment
        fields = ('id', 'content', 'task', 'author', 'createdAt',
                  'updatedAt', 'isEdited')


def task_queryset():
    return Task.objects.select_related('project', 'assigned_to', 'created_by')


def comment_queryset():
    return Comment.objects.select_related('author')


def canonical_project(project_id):
    project = Project.objects.with_relations().get(pk=project_id)
    return ProjectSerializer(project).data


def canonical_task(task_id):
    return TaskSerializer(task_queryset().get(pk=task_id)).data


def canonical_comment(comment_id):
    return CommentSerializer(comment_queryset().get(pk=comment_id)).data


# Input validation

class ObjectIdField(serializers.CharField):
    default_error_messages = {
        'invalid': 'Invalid ID format',
    }

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if not is_object_id(value):
            self.fail('invalid')
        return value


class ProjectInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, error_messages={
        'required': 'Project name is required',
        'blank': 'Project name is required',
        'max_length': 'Project name cannot exceed 100 characters',
    })
    description = serializers.CharField(max_length=500, error_messages={
        'required': 'Description is required',
        'blank': 'Description is required',
        'max_length': 'Description cannot exceed 500 characters',
    })
    status = serializers.ChoiceField(choices=Project.Status.choices,
                                     required=False)
    startDate = serializers.DateTimeField(source='start_date', required=False,
                                          allow_null=True)
    endDate = serializers.DateTimeField(source='end_date', required=False,
                                        allow_null=True)

    def validate(self, attrs):
        start = attrs.get('start_date')
        end = attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({
                'endDate': 'End date cannot be before start date',
            })
        return attrs


class MemberInputSerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={
        'required': 'Email is required',
        'blank': 'Email is required',
        'invalid': 'Please provide a valid email',
    })
    role = serializers.ChoiceField(
        choices=[ProjectMember.Role.ADMIN.value, ProjectMember.Role.MEMBER.value],
        default=ProjectMember.Role.MEMBER.value,
    )


class AttachmentSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    url = serializers.URLField()
    uploadedAt = serializers.DateTimeField(required=False)


class TaskFieldsSerializer(serializers.Serializer):
    """Fields a member may set on a task, on creation or update"""
    title = serializers.CharField(max_length=200, error_messages={
        'required': 'Task title is required',
        'blank': 'Task title is required',
        'max_length': 'Title cannot exceed 200 characters',
    })
    description = serializers.CharField(max_length=1000, required=False,
                                        allow_blank=True, error_messages={
        'max_length': 'Description cannot exceed 1000 characters',
    })
    assignedTo = ObjectIdField(source='assigned_to_id', required=False,
                               allow_null=True)
    status = serializers.ChoiceField(choices=Task.Status.choices,
                                     required=False)
    priority = serializers.ChoiceField(choices=Task.Priority.choices,
                                       required=False)
    dueDate = serializers.DateTimeField(source='due_date', required=False,
                                        allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=50),
                                 required=False)
    attachments = AttachmentSerializer(many=True, required=False)

    def validate_tags(self, value):
        # A set of tags, first occurrence keeps its position
        return list(dict.fromkeys(value))


class TaskCreateSerializer(TaskFieldsSerializer):
    project = ObjectIdField(error_messages={
        'required': 'Project is required',
        'blank': 'Project is required',
        'invalid': 'Invalid project ID',
    })


class TaskFilterSerializer(serializers.Serializer):
    project = ObjectIdField(required=False)
    status = serializers.ChoiceField(choices=Task.Status.choices,
                                     required=False)
    assignedTo = ObjectIdField(source='assigned_to_id', required=False)


class CommentInputSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=500, error_messages={
        'required': 'Comment cannot be empty',
        'blank': 'Comment cannot be empty',
        'max_length': 'Comment cannot exceed 500 characters',
    })


class CommentCreateSerializer(CommentInputSerializer):
    task = ObjectIdField(error_messages={
        'required': 'Task is required',
        'blank': 'Task is required',
        'invalid': 'Invalid task ID',
    })
