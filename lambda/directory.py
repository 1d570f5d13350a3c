"""
Student, vendor and product lookups.

Students are looked up by the identifier a tier proves (email, phone number or
registration number) and registered on first successful verification.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from boto3.dynamodb.conditions import Key


EMAIL_INDEX = 'email-index'
PHONE_INDEX = 'phone_number-index'
REGISTRATION_INDEX = 'university_registration-index'


def registration_key(university_id: str, registration_number: str) -> str:
    return f"{university_id}#{registration_number.strip().upper()}"


class Directory:
    """Read access to students, vendors and products, plus student registration."""

    def __init__(self, students_table, vendors_table, products_table):
        self.students_table = students_table
        self.vendors_table = vendors_table
        self.products_table = products_table

    def get_student(self, student_id: str) -> Optional[Dict[str, Any]]:
        response = self.students_table.get_item(Key={'student_id': student_id})
        return response.get('Item')

    def get_active_student(self, student_id: str) -> Optional[Dict[str, Any]]:
        """Student row if it exists and its status is 'active'."""
        student = self.get_student(student_id)
        if student and student.get('status') == 'active':
            return student
        return None

    def _query_one(self, index_name: str, attribute: str, value: str) -> Optional[Dict[str, Any]]:
        response = self.students_table.query(
            IndexName=index_name,
            KeyConditionExpression=Key(attribute).eq(value),
            Limit=1
        )
        items = response.get('Items', [])
        return items[0] if items else None

    def find_student(
        self,
        university_id: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        registration_number: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Find a student by the first identifier supplied.

        Registration numbers are only unique within a university, so they
        are looked up together with `university_id`.
        """
        if registration_number and university_id:
            student = self._query_one(
                REGISTRATION_INDEX, 'university_registration',
                registration_key(university_id, registration_number)
            )
            if student:
                return student
        if email:
            student = self._query_one(EMAIL_INDEX, 'email', email.lower())
            if student:
                return student
        if phone_number:
            return self._query_one(PHONE_INDEX, 'phone_number', phone_number)
        return None

    def find_or_create_student(
        self,
        university_id: Optional[str],
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        registration_number: Optional[str] = None,
        name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Return the student matching the proven identifier, registering a
        minimal active student when none exists yet.
        """
        student = self.find_student(
            university_id=university_id,
            email=email,
            phone_number=phone_number,
            registration_number=registration_number
        )
        if student:
            return student

        student = {
            'student_id': str(uuid.uuid4()),
            'status': 'active',
            'name': name or 'Student',
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        if university_id:
            student['university_id'] = university_id
        if email:
            student['email'] = email.lower()
        if phone_number:
            student['phone_number'] = phone_number
        if registration_number and university_id:
            student['registration_number'] = registration_number.strip()
            student['university_registration'] = registration_key(university_id, registration_number)

        self.students_table.put_item(Item=student)
        print(f"Registered student {student['student_id']}")
        return student

    def get_vendor(self, vendor_id: str) -> Optional[Dict[str, Any]]:
        """Vendor row unless missing or soft-deleted."""
        response = self.vendors_table.get_item(Key={'vendor_id': vendor_id})
        vendor = response.get('Item')
        if not vendor or vendor.get('deleted_at'):
            return None
        return vendor

    def get_vendor_product(self, vendor_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        """Product row if it exists, is not deleted and belongs to the vendor."""
        response = self.products_table.get_item(Key={'product_id': product_id})
        product = response.get('Item')
        if not product or product.get('deleted_at') or product.get('vendor_id') != vendor_id:
            return None
        return product
