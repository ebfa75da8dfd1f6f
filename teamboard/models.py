from bson import ObjectId
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.functional import cached_property


def object_id():
    """Primary keys keep the 24-hex ObjectId shape of document ids"""
    return str(ObjectId())


def is_object_id(value):
    return isinstance(value, str) and ObjectId.is_valid(value)


class User(AbstractUser):
    id = models.CharField(primary_key=True, max_length=24,
                          default=object_id, editable=False)
    name = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    avatar = models.URLField(blank=True)

    REQUIRED_FIELDS = ['email', 'name']

    def __str__(self):
        return self.name or self.username


class ProjectQuerySet(models.QuerySet):

    def visible_to(self, user):
        """Projects where user is the owner or a member"""
        return self.filter(
            Q(owner=user) | Q(members__user=user)
        ).distinct()

    def with_relations(self):
        return self.select_related('owner').prefetch_related('members__user')


class Project(models.Model):

    class Status(models.TextChoices):
        PLANNING = 'planning'
        ACTIVE = 'active'
        ON_HOLD = 'on-hold'
        COMPLETED = 'completed'

    id = models.CharField(primary_key=True, max_length=24,
                          default=object_id, editable=False)
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500)
    owner = models.ForeignKey(
        User,
        related_name='owned_projects',
        on_delete=models.CASCADE,
    )
    status = models.CharField(max_length=20, choices=Status.choices,
                              default=Status.PLANNING)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProjectQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    @cached_property
    def roles(self):
        """Maps member user id to role. The owner is always a member."""
        roles = {
            member.user_id: member.role
            for member in self.members.all()
        }
        roles[self.owner_id] = ProjectMember.Role.OWNER.value
        return roles


class ProjectMember(models.Model):

    class Role(models.TextChoices):
        OWNER = 'owner'
        ADMIN = 'admin'
        MEMBER = 'member'

    project = models.ForeignKey(
        Project,
        related_name='members',
        on_delete=models.CASCADE,
    )
    user = models.ForeignKey(
        User,
        related_name='memberships',
        on_delete=models.CASCADE,
    )
    role = models.CharField(max_length=10, choices=Role.choices,
                            default=Role.MEMBER)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        unique_together = ('project', 'user',)

    def __str__(self):
        return f'{self.user} ({self.role}) in {self.project}'


class Task(models.Model):

    class Status(models.TextChoices):
        TODO = 'todo'
        IN_PROGRESS = 'in-progress'
        REVIEW = 'review'
        DONE = 'done'

    class Priority(models.TextChoices):
        LOW = 'low'
        MEDIUM = 'medium'
        HIGH = 'high'
        URGENT = 'urgent'

    id = models.CharField(primary_key=True, max_length=24,
                          default=object_id, editable=False)
    title = models.CharField(max_length=200)
    description = models.CharField(max_length=1000, blank=True)
    project = models.ForeignKey(
        Project,
        related_name='tasks',
        on_delete=models.CASCADE,
    )
    assigned_to = models.ForeignKey(
        User,
        related_name='assigned_tasks',
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    created_by = models.ForeignKey(
        User,
        related_name='created_tasks',
        on_delete=models.CASCADE,
    )
    status = models.CharField(max_length=20, choices=Status.choices,
                              default=Status.TODO)
    priority = models.CharField(max_length=10, choices=Priority.choices,
                                default=Priority.MEDIUM)
    due_date = models.DateTimeField(null=True, blank=True)
    tags = models.JSONField(default=list, blank=True)
    attachments = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['project', 'status'], name='task_project_status'),
            models.Index(fields=['assigned_to'], name='task_assigned_to'),
            models.Index(fields=['due_date'], name='task_due_date'),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        # completed_at is stamped once, on the first save as done
        if self.status == self.Status.DONE and self.completed_at is None:
            self.completed_at = timezone.now()
        super().save(*args, **kwargs)


class Comment(models.Model):
    id = models.CharField(primary_key=True, max_length=24,
                          default=object_id, editable=False)
    content = models.CharField(max_length=500)
    task = models.ForeignKey(
        Task,
        related_name='comments',
        on_delete=models.CASCADE,
    )
    author = models.ForeignKey(
        User,
        related_name='comments',
        on_delete=models.CASCADE,
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(null=True, blank=True)
    is_edited = models.BooleanField(default=False)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['task', '-created_at'], name='comment_task_created'),
        ]

    def __str__(self):
        return f'{self.author}: {self.content[:50]}...'

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_content = instance.__dict__.get('content')
        return instance

    def save(self, *args, **kwargs):
        if self._state.adding:
            if self.updated_at is None:
                self.updated_at = self.created_at
        elif self.content != getattr(self, '_loaded_content', self.content):
            self.updated_at = timezone.now()
            self.is_edited = True
        super().save(*args, **kwargs)
        self._loaded_content = self.content
