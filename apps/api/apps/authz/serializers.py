"""
Authz serializers for the current user profile.
"""
from rest_framework import serializers
from apps.authz.models import User


class CurrentUserSerializer(serializers.ModelSerializer):
    """
    Profile of the authenticated user with the resolved role and the
    anamnesis capabilities that role grants.
    """
    role = serializers.SerializerMethodField()
    roles = serializers.SerializerMethodField()
    capabilities = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'role',
            'roles',
            'capabilities',
        ]
        read_only_fields = fields

    def get_role(self, obj):
        return self.context.get('role')

    def get_roles(self, obj):
        return sorted(obj.role_names)

    def get_capabilities(self, obj):
        return self.context.get('capabilities', {})
