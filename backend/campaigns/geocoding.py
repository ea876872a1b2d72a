"""
CEP geocoding and distance helpers.

Addresses come from ViaCEP (BrasilAPI as fallback), coordinates from Nominatim.
Lookups are cached for a day since CEP data rarely changes.
"""
import logging
import math
import re
import requests
from django.core.cache import cache

from backend.core.cache_utils import make_cache_key

logger = logging.getLogger(__name__)

VIACEP_URL = 'https://viacep.com.br/ws/{cep}/json/'
BRASILAPI_URL = 'https://brasilapi.com.br/api/cep/v2/{cep}'
NOMINATIM_URL = 'https://nominatim.openstreetmap.org/search'
USER_AGENT = 'CompraColetiva/1.0'
REQUEST_TIMEOUT = 5
GEOCODING_CACHE_TTL = 60 * 60 * 24
EARTH_RADIUS_KM = 6371


class GeocodingError(Exception):
    pass


def normalize_cep(cep):
    return re.sub(r'\D', '', cep or '')


def format_cep(cep):
    clean = normalize_cep(cep)
    return f"{clean[:5]}-{clean[5:]}"


def get_address_from_cep(cep):
    """Resolve a CEP to street, neighborhood, city and state"""
    normalized = normalize_cep(cep)
    if len(normalized) != 8:
        raise GeocodingError('CEP must have 8 digits')

    cache_key = make_cache_key('geocoding', 'cep', normalized)
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        response = requests.get(VIACEP_URL.format(cep=normalized), timeout=REQUEST_TIMEOUT)
        data = response.json()
        if data.get('erro'):
            raise GeocodingError('CEP not found on ViaCEP')
        address = {
            'zip_code': format_cep(normalized),
            'street': data.get('logradouro') or '',
            'neighborhood': data.get('bairro') or '',
            'city': data.get('localidade') or '',
            'state': data.get('uf') or '',
        }
    except (requests.exceptions.RequestException, ValueError, GeocodingError) as e:
        logger.warning(f"ViaCEP lookup failed for {normalized}: {str(e)}, trying BrasilAPI")
        try:
            response = requests.get(BRASILAPI_URL.format(cep=normalized), timeout=REQUEST_TIMEOUT)
            if response.status_code != 200:
                raise GeocodingError('CEP not found on BrasilAPI')
            data = response.json()
        except (requests.exceptions.RequestException, ValueError, GeocodingError):
            raise GeocodingError(f"CEP {format_cep(normalized)} not found")
        address = {
            'zip_code': format_cep(normalized),
            'street': data.get('street') or '',
            'neighborhood': data.get('neighborhood') or '',
            'city': data.get('city') or '',
            'state': data.get('state') or '',
        }

    cache.set(cache_key, address, GEOCODING_CACHE_TTL)
    return address


def get_coordinates(street, number, city, state):
    """Resolve an address to (latitude, longitude), retrying without the number"""
    first = f"{street}, {number}" if number else street
    query = ', '.join(part for part in [first, city, state, 'Brazil'] if part)

    cache_key = make_cache_key('geocoding', 'coords', query)
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        response = requests.get(
            NOMINATIM_URL,
            params={'q': query, 'format': 'json', 'limit': 1, 'countrycodes': 'br'},
            headers={'User-Agent': USER_AGENT},
            timeout=REQUEST_TIMEOUT
        )
        results = response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        raise GeocodingError(f"Error looking up address coordinates: {str(e)}")

    if not results:
        if number:
            return get_coordinates(street, '', city, state)
        raise GeocodingError('Coordinates not found for address')

    coordinates = (float(results[0]['lat']), float(results[0]['lon']))
    cache.set(cache_key, coordinates, GEOCODING_CACHE_TTL)
    return coordinates


def geocode_cep(cep, number=None):
    """Address plus coordinates for a CEP"""
    address = get_address_from_cep(cep)
    latitude, longitude = get_coordinates(address['street'], number or '', address['city'], address['state'])
    return dict(address, latitude=latitude, longitude=longitude)


def geocode_campaign_pickup(campaign):
    """
    Fill the campaign pickup coordinates from its CEP and address number.
    Failures are logged and leave the campaign untouched. Returns True on success.
    """
    if not campaign.pickup_zip_code:
        return False
    try:
        result = geocode_cep(campaign.pickup_zip_code, campaign.pickup_address_number)
    except GeocodingError as e:
        logger.warning(f"Could not geocode pickup for campaign {campaign.id}: {str(e)}")
        return False

    campaign.pickup_latitude = result['latitude']
    campaign.pickup_longitude = result['longitude']
    if not campaign.pickup_address:
        campaign.pickup_address = result['street']
    if not campaign.pickup_neighborhood:
        campaign.pickup_neighborhood = result['neighborhood']
    if not campaign.pickup_city:
        campaign.pickup_city = result['city']
    if not campaign.pickup_state:
        campaign.pickup_state = result['state']
    campaign.save(update_fields=[
        'pickup_latitude', 'pickup_longitude', 'pickup_address', 'pickup_neighborhood',
        'pickup_city', 'pickup_state', 'updated_at'
    ])
    return True


def haversine_km(lat1, lon1, lat2, lon2):
    """Great-circle distance in kilometers, rounded to 1 decimal place"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def format_distance(km):
    if km < 1:
        return f"{round(km * 1000)} m"
    return f"{km:.1f} km"
