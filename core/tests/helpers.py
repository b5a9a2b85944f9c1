import base64
import io
import re

from PIL import Image
from rest_framework.test import APIClient

PASSWORD = 'P@ssw0rd1'

THREE_ROWS = [
    {'parameter': 'Hemoglobin', 'value': '13.5', 'unit': 'g/dL', 'referenceRange': '12-16'},
    {'parameter': 'WBC', 'value': '7.2', 'unit': '10^9/L', 'referenceRange': '4-11'},
    {'parameter': 'Platelets', 'value': '250', 'unit': '10^9/L', 'referenceRange': '150-400', 'flag': 'normal'},
]


def make_signature(color='black') -> str:
    img = Image.new('RGB', (160, 48), 'white')
    for x in range(10, 150):
        img.putpixel((x, 24 + (x % 7) - 3), (0, 0, 0) if color == 'black' else (0, 0, 200))
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buf.getvalue()).decode()


def access_code_from(message) -> str:
    return re.search(r'Access code: (\w+)', message.body).group(1)


def api(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client
