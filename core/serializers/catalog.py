import bleach
from rest_framework import serializers

from core.models import LabTest


class LabTestSerializer(serializers.ModelSerializer):
    normalRange = serializers.CharField(source='normal_range', required=False, allow_blank=True, max_length=255)
    sampleType = serializers.CharField(source='sample_type', required=False, allow_blank=True, max_length=64)
    turnaroundHours = serializers.IntegerField(source='turnaround_hours', required=False, allow_null=True, min_value=0)
    isActive = serializers.BooleanField(source='is_active', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = LabTest
        fields = ['id', 'name', 'code', 'category', 'description', 'normalRange', 'units', 'methodology',
                  'sampleType', 'turnaroundHours', 'price', 'isActive', 'createdAt']
        read_only_fields = ['id']
        extra_kwargs = {'price': {'required': False, 'allow_null': True, 'min_value': 0}}

    def validate_code(self, v):
        v = (v or '').strip().upper()
        qs = LabTest.objects.filter(code=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A test with this code already exists.')
        return v

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if not v:
            raise serializers.ValidationError('Name is required.')
        return v

    def validate(self, attrs):
        for key in ('description', 'normal_range', 'units', 'methodology', 'sample_type'):
            if key in attrs:
                attrs[key] = bleach.clean((attrs[key] or '').strip(), strip=True)
        return attrs


class LabTestQuerySerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=[c for c, _ in LabTest.CATEGORY_CHOICES], required=False)
    q = serializers.CharField(max_length=64, required=False)
    includeInactive = serializers.BooleanField(required=False, default=False)
