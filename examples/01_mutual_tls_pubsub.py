#!/usr/bin/env python3
"""
01_mutual_tls_pubsub.py - Mutual TLS Publish and Subscribe

This example demonstrates:
- Building a configuration that validates the broker against ca.crt
- Building a test-only configuration with validation disabled
- Subscribing and receiving messages as a reactive stream
- Publishing on a fixed interval

Prerequisites:
    - MQTT broker listening for mutual TLS (e.g. mosquitto with
      require_certificate true)
    - A certificate folder with ca.crt, client.crt/client.key (publisher,
      CN "client") and sub.crt/sub.key (subscriber, CN "sub")
    - pymqtls installed: pip install pymqtls

Environment:
    MQTT_HOST      broker host (default: localhost)
    MQTT_PORT      broker port (default: 8883)
    MQTT_TOPIC     topic (default: hello/world)
    MQTT_CERT_DIR  certificate folder (default: ./certs)

Expected Output:
    Subscriber connected (validation disabled)
    Publisher connected (broker validated against ca.crt)
    Published #1 (mid=1)
    Received on hello/world: hello world! #1
    ...

Run with:
    python 01_mutual_tls_pubsub.py
"""

import logging
import os
import time
from pathlib import Path

from pymqtls import MQTLSError, MQTTClient, QoS, build_config

HOST = os.environ.get("MQTT_HOST", "localhost")
PORT = int(os.environ.get("MQTT_PORT", "8883"))
TOPIC = os.environ.get("MQTT_TOPIC", "hello/world")
CERT_DIR = Path(os.environ.get("MQTT_CERT_DIR", "certs"))

INTERVAL_SECONDS = 2
DURATION_SECONDS = 10


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Publisher trusts only brokers chaining to ca.crt
    publisher_config = build_config(
        HOST, PORT, "client",
        CERT_DIR / "client.crt", CERT_DIR / "client.key",
        ca_cert=CERT_DIR / "ca.crt",
        validate_chain=True,
    )
    # Subscriber skips broker validation: for local testing only
    subscriber_config = build_config(
        HOST, PORT, "sub",
        CERT_DIR / "sub.crt", CERT_DIR / "sub.key",
        validate_chain=False,
    )

    with MQTTClient() as subscriber, MQTTClient() as publisher:
        if not subscriber.connect(subscriber_config).success:
            print("Subscriber connection refused")
            return
        print("Subscriber connected (validation disabled)")

        subscriber.messages().subscribe(
            on_next=lambda m: print(f"Received on {m.topic}: {m.decode()}")
        )
        suback = subscriber.subscribe(TOPIC, QoS.AT_LEAST_ONCE)
        if not suback.success:
            print(f"Subscription refused: {suback.result_codes}")
            return

        if not publisher.connect(publisher_config).success:
            print("Publisher connection refused")
            return
        print("Publisher connected (broker validated against ca.crt)")

        count = 0
        deadline = time.monotonic() + DURATION_SECONDS
        while time.monotonic() < deadline:
            count += 1
            result = publisher.publish(TOPIC, f"hello world! #{count}", QoS.AT_LEAST_ONCE)
            print(f"Published #{count} (mid={result.message_id})")
            time.sleep(INTERVAL_SECONDS)

        # let the last message arrive
        time.sleep(1)
    print("Done")


if __name__ == "__main__":
    try:
        main()
    except MQTLSError as e:
        print(f"Error: {e}")
        raise SystemExit(1)
