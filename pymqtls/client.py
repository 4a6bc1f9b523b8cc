# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
MQTT client over a pymqtls connection configuration.

Wraps paho-mqtt so that a ConnectionConfiguration is all it takes to open a
mutually authenticated session. Every operation waits for the broker's
acknowledgement and returns its result codes; inbound messages are delivered
as a reactive stream.

Usage Patterns:

    # Pattern 1: Context manager (recommended)
    from pymqtls import MQTTClient, build_config
    config = build_config("broker", 8883, "client", "client.crt", "client.key",
                          ca_cert="ca.crt")
    with MQTTClient() as client:
        connack = client.connect(config)
        client.publish("hello/world", b"hello world!")

    # Pattern 2: Subscribing
    client = MQTTClient()
    client.connect(config)
    client.messages().subscribe(on_next=lambda m: print(m.topic, m.decode()))
    suback = client.subscribe("hello/world", QoS.EXACTLY_ONCE)
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import paho.mqtt.client as mqtt
from reactivex import Observable, Subject, operators as ops
from reactivex.scheduler import ThreadPoolScheduler

from .configurator import ConnectionConfiguration
from .exceptions import ConnectionError, ConnectionTimeoutError, NotConnectedError
from .models import (
    ConnectResult,
    ProtocolVersion,
    PublishResult,
    QoS,
    ReceivedMessage,
    SessionOptions,
    SubscribeResult,
)

logger = logging.getLogger(__name__)

_PROTOCOLS = {
    ProtocolVersion.MQTT_3_1_1: mqtt.MQTTv311,
    ProtocolVersion.MQTT_5: mqtt.MQTTv5,
}


class MQTTClient:
    """
    MQTT client session secured by a ConnectionConfiguration.

    The TLS handshake runs the configuration's validation policy; a rejected
    broker certificate surfaces as a ConnectionError from connect().

    Example:
        >>> client = MQTTClient()
        >>> result = client.connect(config)
        >>> result.success
        True
        >>> client.publish("hello/world", b"hello").reason_code
        0
        >>> client.close()
    """

    def __init__(self, options: SessionOptions | None = None) -> None:
        """
        Initialize the client.

        Args:
            options: Session options, defaults to SessionOptions().
        """
        self._options = options or SessionOptions()
        self._client: mqtt.Client | None = None
        self._config: ConnectionConfiguration | None = None
        self._acks = threading.Condition()
        self._connack: ConnectResult | None = None
        self._subacks: dict[int, list[int]] = {}
        self._pubacks: dict[int, int] = {}
        # mids whose caller gave up waiting; their late acks are dropped
        self._abandoned_pubs: set[int] = set()
        self._abandoned_subs: set[int] = set()
        self._subject: Subject[ReceivedMessage] = Subject()
        self._scheduler = ThreadPoolScheduler(max_workers=1)

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    # =========================================================================
    # Connection
    # =========================================================================

    def connect(self, config: ConnectionConfiguration, timeout: float | None = None) -> ConnectResult:
        """
        Open the TLS connection and perform the MQTT CONNECT handshake.

        Args:
            config: Configuration from build_config().
            timeout: Seconds to wait for CONNACK, defaults to connect_timeout_ms.

        Returns:
            The broker's CONNACK as a ConnectResult. A refused connection is
            returned, not raised.

        Raises:
            ConnectionError: If the TCP connection or TLS handshake fails.
            ConnectionTimeoutError: If no CONNACK arrives in time.
        """
        if self._client is not None:
            self.disconnect()
        if timeout is None:
            timeout = self._options.connect_timeout_ms / 1000.0

        client = self._create_client(config)
        with self._acks:
            self._connack = None
            self._pubacks.clear()
            self._subacks.clear()
            self._abandoned_pubs.clear()
            self._abandoned_subs.clear()

        host, port = config.host, config.port
        try:
            client.connect(host, port, keepalive=self._options.keepalive, **self._connect_args())
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {host}:{port}: {e}", host, port) from e

        self._client = client
        self._config = config
        client.loop_start()

        with self._acks:
            acknowledged = self._acks.wait_for(lambda: self._connack is not None, timeout)
            result = self._connack
        if not acknowledged or result is None:
            self._shutdown()
            raise ConnectionTimeoutError(f"No CONNACK from {host}:{port} within {timeout}s", host, port)

        if result.success:
            logger.info("Connected to %s as %s", f"{host}:{port}", config.client_id)
        else:
            logger.info("Connection to %s refused: %s (%d)", f"{host}:{port}", result.reason, result.result_code)
            self._shutdown()
        return result

    def disconnect(self) -> None:
        """Disconnect from the broker."""
        if self._client is None:
            return
        self._shutdown()
        logger.info("Disconnected")

    def close(self) -> None:
        """Disconnect and complete the message stream."""
        self.disconnect()
        self._subject.on_completed()

    def _create_client(self, config: ConnectionConfiguration) -> mqtt.Client:
        protocol = _PROTOCOLS[self._options.protocol]
        kwargs: dict[str, Any] = {"client_id": config.client_id, "protocol": protocol}
        if protocol != mqtt.MQTTv5:
            kwargs["clean_session"] = self._options.clean_session
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, **kwargs)

        client.tls_set_context(config.create_ssl_context())
        # broker trust is decided by the validation policy, not host name matching
        client.tls_insecure_set(True)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_publish = self._on_publish
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        return client

    def _connect_args(self) -> dict[str, Any]:
        if self._options.protocol == ProtocolVersion.MQTT_5:
            return {"clean_start": self._options.clean_session}
        return {}

    def _shutdown(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.disconnect()
            client.loop_stop()

    # =========================================================================
    # Messaging
    # =========================================================================

    def publish(
        self,
        topic: str,
        payload: bytes | str,
        qos: QoS = QoS.AT_MOST_ONCE,
        retain: bool = False,
        timeout: float | None = None,
    ) -> PublishResult:
        """
        Publish a message and wait until the broker has it.

        Args:
            topic: Topic to publish to.
            payload: Message payload.
            qos: Quality of service.
            retain: Set the retained flag.
            timeout: Seconds to wait, defaults to ack_timeout_ms.

        Returns:
            PublishResult with the message id and reason code.

        Raises:
            NotConnectedError: If the client is not connected.
            ConnectionTimeoutError: If the publish is not completed in time.
        """
        client = self._require_client()
        if timeout is None:
            timeout = self._options.ack_timeout_ms / 1000.0

        info = client.publish(topic, payload, qos=int(qos), retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            return PublishResult(topic=topic, message_id=info.mid, reason_code=int(info.rc))

        with self._acks:
            completed = self._acks.wait_for(lambda: info.mid in self._pubacks, timeout)
            reason_code = self._pubacks.pop(info.mid, 0)
            if not completed:
                self._abandoned_pubs.add(info.mid)
        if not completed:
            raise self._timeout(f"Publish {info.mid} to {topic} not completed within {timeout}s")
        return PublishResult(topic=topic, message_id=info.mid, reason_code=reason_code)

    def subscribe(
        self,
        topic: str,
        qos: QoS = QoS.AT_MOST_ONCE,
        timeout: float | None = None,
    ) -> SubscribeResult:
        """
        Subscribe to a topic filter and wait for SUBACK.

        Returns:
            SubscribeResult mapping the topic filter to its granted QoS or
            failure code.

        Raises:
            NotConnectedError: If the client is not connected.
            ConnectionTimeoutError: If no SUBACK arrives in time.
        """
        client = self._require_client()
        if timeout is None:
            timeout = self._options.ack_timeout_ms / 1000.0

        rc, mid = client.subscribe(topic, qos=int(qos))
        if rc != mqtt.MQTT_ERR_SUCCESS:
            return SubscribeResult(message_id=mid or 0, result_codes={topic: 0x80})

        with self._acks:
            acknowledged = self._acks.wait_for(lambda: mid in self._subacks, timeout)
            codes = self._subacks.pop(mid, [])
            if not acknowledged:
                self._abandoned_subs.add(mid)
        if not acknowledged:
            raise self._timeout(f"No SUBACK for {topic} within {timeout}s")
        return SubscribeResult(message_id=mid, result_codes={topic: codes[0] if codes else 0x80})

    def messages(self) -> Observable[ReceivedMessage]:
        """
        Get observable stream of inbound messages.

        Returns:
            Observable stream of ReceivedMessage objects, delivered off the
            network thread.
        """
        return self._subject.pipe(ops.observe_on(self._scheduler))

    def _require_client(self) -> mqtt.Client:
        if self._client is None or not self._client.is_connected():
            raise NotConnectedError()
        return self._client

    def _timeout(self, message: str) -> ConnectionTimeoutError:
        config = self._config
        return ConnectionTimeoutError(message, config.host if config else None, config.port if config else None)

    # =========================================================================
    # paho callbacks (network thread)
    # =========================================================================

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        with self._acks:
            self._connack = ConnectResult(
                result_code=reason_code.value,
                reason=str(reason_code),
                session_present=bool(flags.session_present),
            )
            self._acks.notify_all()

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.value != 0:
            logger.info("Connection lost: %s", reason_code)

    def _on_publish(self, client: mqtt.Client, userdata: Any, mid: int, reason_code: Any, properties: Any) -> None:
        with self._acks:
            if mid in self._abandoned_pubs:
                self._abandoned_pubs.discard(mid)
                return
            self._pubacks[mid] = reason_code.value
            self._acks.notify_all()

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, reason_codes: list[Any], properties: Any) -> None:
        with self._acks:
            if mid in self._abandoned_subs:
                self._abandoned_subs.discard(mid)
                return
            self._subacks[mid] = [rc.value for rc in reason_codes]
            self._acks.notify_all()

    def _on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        self._subject.on_next(
            ReceivedMessage(
                topic=message.topic,
                payload=message.payload,
                qos=QoS(message.qos),
                retain=bool(message.retain),
            )
        )

    def __enter__(self) -> MQTTClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
