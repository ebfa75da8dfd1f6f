from teamboard.models import User


def create_user(name, **kwargs):
    username = name.lower()
    return User.objects.create_user(
        username=username,
        email=f'{username}@example.com',
        password='secret',
        name=name,
        **kwargs,
    )


MISSING_ID = '5f0c8e6b9d1e4a2b3c4d5e6f'
