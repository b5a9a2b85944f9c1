# core/management/commands/ensure_demo_users.py
import datetime

from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from django.db import transaction

from core.models import DoctorProfile, LabTechnicianProfile, LabTest, PatientProfile, User

DEMO_SET = [
    ("admin1", "admin"),
    ("frontdesk1", "front_desk"),
    ("doctor1", "doctor"),
    ("labtech1", "lab_technician"),
    ("patient1", "patient"),
]

DEMO_TESTS = [
    ("CBC", "Complete Blood Count", "Blood", "See per-parameter ranges", ""),
    ("GLU", "Fasting Blood Glucose", "Blood", "70-99", "mg/dL"),
    ("UA", "Urinalysis", "Urine", "", ""),
]


class Command(BaseCommand):
    help = "Ensure demo users (one per role) and a few catalog tests exist (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="Medlab#2024", help="password set on every demo user")

    @transaction.atomic
    def handle(self, *args, **opts):
        password = make_password(opts["password"])
        for username, role in DEMO_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": password, "is_active": True,
                          "email": f"{username}@medlab.local"},
            )
            if not created:
                # reset password, role and active flag
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            if role == "doctor":
                DoctorProfile.objects.get_or_create(
                    user=u, defaults={"specialization": "Pathology", "license_number": f"DEMO-LIC-{u.id}"})
            elif role == "lab_technician":
                LabTechnicianProfile.objects.get_or_create(
                    user=u, defaults={"certification": "MLS", "certification_number": f"DEMO-CERT-{u.id}"})
            elif role == "patient":
                PatientProfile.objects.get_or_create(user=u, defaults={
                    "first_name": "Demo", "last_name": "Patient", "email": u.email, "phone": "000-0000",
                    "date_of_birth": datetime.date(1990, 1, 1), "gender": "other",
                })
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))

        for code, name, category, normal_range, units in DEMO_TESTS:
            LabTest.objects.get_or_create(code=code, defaults={
                "name": name, "category": category, "normal_range": normal_range, "units": units})
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
