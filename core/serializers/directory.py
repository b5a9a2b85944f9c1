import bleach
from rest_framework import serializers

from core.models import PatientProfile, User


def clean_text(v):
    return bleach.clean((v or '').strip(), strip=True)


class StaffCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    role = serializers.ChoiceField(choices=['admin', 'front_desk', 'doctor', 'lab_technician'])
    firstName = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    lastName = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)
    specialization = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    licenseNumber = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    certification = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    certificationNumber = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')

    def validate_username(self, v):
        return v.strip()

    def validate(self, attrs):
        for key in ('firstName', 'lastName', 'specialization', 'licenseNumber', 'certification', 'certificationNumber'):
            attrs[key] = clean_text(attrs.get(key))
        return attrs


class PatientCreateSerializer(serializers.Serializer):
    firstName = serializers.CharField(max_length=150)
    lastName = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32)
    dateOfBirth = serializers.DateField()
    gender = serializers.ChoiceField(choices=[c for c, _ in PatientProfile.GENDER_CHOICES])
    address = serializers.CharField(required=False, allow_blank=True, default='')
    category = serializers.ChoiceField(choices=[c for c, _ in PatientProfile.CATEGORY_CHOICES], default='walk_in')
    referredBy = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    medicalHistory = serializers.CharField(required=False, allow_blank=True, default='')
    username = serializers.CharField(max_length=150, required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate_firstName(self, v):
        v = clean_text(v)
        if not v:
            raise serializers.ValidationError('First name is required.')
        return v

    def validate_lastName(self, v):
        return clean_text(v)

    def validate_phone(self, v):
        return clean_text(v)

    def validate_address(self, v):
        return clean_text(v)

    def validate_referredBy(self, v):
        return clean_text(v)

    def validate_medicalHistory(self, v):
        return clean_text(v)


class UserListQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[c for c, _ in User.ROLE_CHOICES], required=False)
    q = serializers.CharField(max_length=64, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


def user_to_dict(user: User) -> dict:
    data = {
        'id': user.id,
        'username': user.username,
        'name': user.display_name,
        'email': user.email,
        'role': user.role,
        'isActive': user.is_active,
    }
    if user.role == 'doctor' and hasattr(user, 'doctor_profile'):
        data['specialization'] = user.doctor_profile.specialization
        data['licenseNumber'] = user.doctor_profile.license_number
    if user.role == 'lab_technician' and hasattr(user, 'lab_technician_profile'):
        data['certification'] = user.lab_technician_profile.certification
        data['certificationNumber'] = user.lab_technician_profile.certification_number
    return data


def patient_to_dict(p: PatientProfile) -> dict:
    return {
        'id': p.id,
        'patientNumber': str(p.patient_number),
        'userId': p.user_id,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'email': p.email,
        'phone': p.phone,
        'dateOfBirth': p.date_of_birth.isoformat() if p.date_of_birth else None,
        'gender': p.gender,
        'address': p.address,
        'category': p.category,
        'referredBy': p.referred_by,
        'isActive': p.is_active,
    }


class PatientQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False)
    category = serializers.ChoiceField(choices=[c for c, _ in PatientProfile.CATEGORY_CHOICES], required=False)
    includeInactive = serializers.BooleanField(required=False, default=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)


class UserUpdateSerializer(serializers.Serializer):
    firstName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    lastName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to update.')
        return {
            'first_name': clean_text(attrs['firstName']) if 'firstName' in attrs else None,
            'last_name': clean_text(attrs['lastName']) if 'lastName' in attrs else None,
            'email': attrs.get('email'),
        }
