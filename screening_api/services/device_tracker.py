"""
Device and network provenance
Parses request headers into browser/OS/device and network descriptors,
derives a submission fingerprint and tags likely fraud signals
"""
import base64
import ipaddress
import json
import logging
import re
import time
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

# Headers worth keeping on the record for later analysis
IMPORTANT_HEADERS = [
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-forwarded-proto",
    "x-forwarded-host",
    "accept-language",
    "accept-encoding",
    "connection",
    "cache-control",
]

AUTOMATION_KEYWORDS = ["bot", "crawler", "spider", "headless", "phantom"]
PRIVATE_NETWORKS = [
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.0/8", "169.254.0.0/16",
        "::1/128", "fc00::/7", "fe80::/10",
    )
]

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _match(pattern: str, text: str) -> str:
    found = re.search(pattern, text)
    return found.group(1) if found else ""


def _lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


# ========== USER AGENT ==========

def parse_user_agent(user_agent: str) -> Dict:
    """Split a User-Agent string into browser, os and device descriptors"""
    info: Dict = {"userAgent": user_agent}

    if "Chrome/" in user_agent:
        info["browser"] = {"name": "Chrome", "version": _match(r"Chrome/(\d+\.\d+)", user_agent)}
    elif "Firefox/" in user_agent:
        info["browser"] = {"name": "Firefox", "version": _match(r"Firefox/(\d+\.\d+)", user_agent)}
    elif "Safari/" in user_agent and "Chrome" not in user_agent:
        info["browser"] = {"name": "Safari", "version": _match(r"Version/(\d+\.\d+)", user_agent)}
    elif "Edge/" in user_agent:
        info["browser"] = {"name": "Edge", "version": _match(r"Edge/(\d+\.\d+)", user_agent)}
    elif "Opera/" in user_agent:
        info["browser"] = {"name": "Opera", "version": _match(r"Opera/(\d+\.\d+)", user_agent)}

    # Mobile platforms first: their UAs also mention Linux or Mac OS X
    if "Android" in user_agent:
        info["os"] = {"name": "Android", "version": _match(r"Android (\d+(?:\.\d+)?)", user_agent)}
    elif "iPhone OS" in user_agent or "iPad" in user_agent or "iOS" in user_agent:
        version = _match(r"OS (\d+[._]\d+)", user_agent).replace("_", ".", 1)
        info["os"] = {"name": "iOS", "version": version}
    elif "Windows NT" in user_agent:
        info["os"] = {"name": "Windows", "version": _match(r"Windows NT (\d+\.\d+)", user_agent)}
    elif "Mac OS X" in user_agent:
        version = _match(r"Mac OS X (\d+[._]\d+)", user_agent).replace("_", ".", 1)
        info["os"] = {"name": "macOS", "version": version}
    elif "Linux" in user_agent:
        info["os"] = {"name": "Linux", "version": ""}

    if "Mobile" in user_agent or "iPhone" in user_agent or "Android" in user_agent:
        device = {"type": "mobile"}
        if "iPhone" in user_agent:
            device["brand"] = "Apple"
            device["model"] = _match(r"iPhone(\d+,\d+)", user_agent) or "iPhone"
        if "Android" in user_agent:
            device_match = re.search(r"\(.*?;\s*(.*?)\s*Build", user_agent)
            if device_match:
                device_name = device_match.group(1)
                device["brand"] = device_name.split(" ")[0] or "Android"
                device["model"] = device_name
    elif "Tablet" in user_agent or "iPad" in user_agent:
        device = {"type": "tablet"}
        if "iPad" in user_agent:
            device["brand"] = "Apple"
            device["model"] = "iPad"
    else:
        device = {"type": "desktop"}
    info["device"] = device

    return info


# ========== NETWORK ==========

def extract_ip_address(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> str:
    """Client IP, preferring proxy headers over the socket address"""
    lowered = _lower_headers(headers)

    if lowered.get("cf-connecting-ip"):
        return lowered["cf-connecting-ip"]
    if lowered.get("x-real-ip"):
        return lowered["x-real-ip"]
    if lowered.get("x-forwarded-for"):
        return lowered["x-forwarded-for"].split(",")[0].strip()
    if remote_addr:
        return remote_addr
    return "unknown"


def get_ip_type(ip: str) -> str:
    return "IPv6" if ":" in ip else "IPv4"


def is_private_address(ip: str) -> bool:
    """RFC 1918, unique-local, loopback or link-local; unparseable addresses count as public"""
    if ip == "localhost":
        return True
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return any(address in network for network in PRIVATE_NETWORKS if network.version == address.version)


def extract_network_info(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> Dict:
    lowered = _lower_headers(headers)
    ip_address = extract_ip_address(lowered, remote_addr)

    request_headers = {name: lowered[name] for name in IMPORTANT_HEADERS if lowered.get(name)}

    return {
        "ipAddress": ip_address,
        "ipType": get_ip_type(ip_address),
        "userAgent": lowered.get("user-agent", ""),
        "referrer": lowered.get("referer") or lowered.get("referrer"),
        "forwardedFor": lowered.get("x-forwarded-for"),
        "requestHeaders": request_headers,
    }


def build_device_info(user_agent: str, client_device_info: Optional[str] = None) -> Dict:
    """
    Server-parsed device descriptor merged with the JSON the browser collected

    Client values (screen, timezone, language, ...) fill in what the headers
    cannot tell us; unparseable client JSON is ignored.
    """
    device_info = parse_user_agent(user_agent)

    if client_device_info:
        try:
            client = json.loads(client_device_info)
        except ValueError:
            logger.warning("Ignoring malformed client device info")
            client = None
        if isinstance(client, dict):
            device_info = {**device_info, **client}

    device_info["userAgent"] = user_agent or device_info.get("userAgent", "")
    return device_info


# ========== FINGERPRINT ==========

def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    sign = "-" if number < 0 else ""
    number = abs(number)
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def hash_form_data(form_data: Dict) -> str:
    """32-bit rolling hash of the key-sorted form JSON, in base36"""
    text = json.dumps(form_data, sort_keys=True, separators=(",", ":"), default=str)
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(value)


def generate_submission_fingerprint(device_info: Dict, network_info: Dict, form_data: Dict) -> str:
    """Identification aid, not a security control; includes a timestamp so it varies per request"""
    fingerprint_data = {
        "ip": network_info.get("ipAddress"),
        "userAgent": device_info.get("userAgent"),
        "browser": device_info.get("browser"),
        "os": device_info.get("os"),
        "device": device_info.get("device"),
        "screen": device_info.get("screen"),
        "timezone": device_info.get("timezone"),
        "timestamp": int(time.time() * 1000),
        "formHash": hash_form_data(form_data),
    }
    encoded = base64.b64encode(json.dumps(fingerprint_data, separators=(",", ":")).encode("utf-8"))
    return encoded.decode("ascii")[:32]


def detect_fraud_indicators(device_info: Dict, network_info: Dict) -> List[str]:
    """Independent soft tags; none of them blocks a submission"""
    indicators = []
    user_agent = device_info.get("userAgent") or ""

    if len(user_agent) < 10:
        indicators.append("suspicious_user_agent")

    if any(keyword in user_agent.lower() for keyword in AUTOMATION_KEYWORDS):
        indicators.append("automation_detected")

    forwarded_for = network_info.get("forwardedFor")
    if forwarded_for and len(forwarded_for.split(",")) > 2:
        indicators.append("multiple_proxy_hops")

    ip_address = network_info.get("ipAddress") or ""
    if is_private_address(ip_address):
        indicators.append("private_ip_address")

    return indicators
