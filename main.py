#!/usr/bin/env python3
"""
Main entry point for the Meet Me Halfway API
"""

import os

from meetmehalfway.app import app, api_key

if __name__ == '__main__':
    if not api_key or api_key == "your_api_key_here":
        print("\n" + "=" * 50)
        print("SETUP REQUIRED:")
        print("=" * 50)
        print("1. Get a Google Maps API key from: https://console.cloud.google.com/")
        print("2. Enable the Geocoding, Directions, Distance Matrix and Places APIs")
        print("3. Put GOOGLE_MAPS_API_KEY=<your key> in a .env file")
        print("4. Restart the app")
        print("=" * 50)
        print("Saved locations and geometric midpoints work without a key\n")

    app.run(
        host=os.getenv('HOST', '0.0.0.0'),
        port=int(os.getenv('PORT', '5001')),
        debug=os.getenv('FLASK_DEBUG', '').lower() in ('1', 'true'),
    )
