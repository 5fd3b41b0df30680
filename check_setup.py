#!/usr/bin/env python3
"""
Quick script to verify a running Meet Me Halfway API is working correctly
Usage: python check_setup.py [base_url]
"""

import sys
import time

import requests

BASE_URL = sys.argv[1].rstrip('/') if len(sys.argv) > 1 else 'http://localhost:5001'


def check_api_server():
    """Test if the API server is responding"""
    try:
        response = requests.get(f'{BASE_URL}/', timeout=5)
    except requests.exceptions.ConnectionError:
        print(f"❌ Cannot connect to API server ({BASE_URL})")
        return False
    if response.status_code != 200 or response.json().get('status') != 'healthy':
        print(f"❌ API Server returned status code: {response.status_code}")
        return False
    print("✅ API Server is running and healthy")
    if not response.json().get('maps_configured'):
        print("⚠️  GOOGLE_MAPS_API_KEY is not configured; only geometric midpoints are available")
    return True


def check_midpoint():
    """Midpoint between Times Square and Brooklyn Bridge"""
    payload = {
        'start': {'lat': 40.7580, 'lng': -73.9855},
        'end': {'lat': 40.7061, 'lng': -73.9969},
    }
    response = requests.post(f'{BASE_URL}/api/midpoint', json=payload, timeout=30)
    if response.status_code != 200:
        print(f"❌ Midpoint failed: {response.json().get('error', 'Unknown error')}")
        return False
    midpoint = response.json()['data']['midpoint']
    print(f"✅ Midpoint ({midpoint['source']}): {midpoint['lat']:.5f}, {midpoint['lng']:.5f}")
    return True


def check_saved_locations():
    """Round-trip a saved location for a throwaway user"""
    headers = {'X-User-Id': f'setup-check-{int(time.time())}'}
    created = requests.post(
        f'{BASE_URL}/api/saved-locations',
        json={'name': 'Setup check', 'lat': 40.7580, 'lng': -73.9855},
        headers=headers,
        timeout=10,
    )
    if created.status_code != 201:
        print(f"❌ Saving a location failed with status {created.status_code}")
        return False
    location_id = created.json()['data']['id']
    deleted = requests.delete(f'{BASE_URL}/api/saved-locations/{location_id}', headers=headers, timeout=10)
    if deleted.status_code != 200:
        print(f"❌ Deleting a location failed with status {deleted.status_code}")
        return False
    print("✅ Saved locations are working")
    return True


def main():
    print("🧪 Testing Meet Me Halfway API Setup")
    print("=" * 50)

    checks = [
        ("API Server Health", check_api_server),
        ("Midpoint", check_midpoint),
        ("Saved Locations", check_saved_locations),
    ]

    passed = 0
    for name, check in checks:
        print(f"\n🔍 Testing {name}...")
        try:
            ok = check()
        except requests.exceptions.RequestException as e:
            print(f"❌ Error testing {name}: {e}")
            ok = False
        if not ok:
            break
        passed += 1

    print("\n" + "=" * 50)
    print(f"📊 Test Results: {passed}/{len(checks)} checks passed")
    return passed == len(checks)


if __name__ == '__main__':
    sys.exit(0 if main() else 1)
