"""Messaging abstraction supporting MQTT, AMQP and in-process backends."""

from __future__ import annotations

import asyncio
import json
import ssl
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
import paho.mqtt.client as mqtt
import structlog

from laundry_dispatch.enterprise.config.settings import MQTTSettings

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[dict], Awaitable[None] | None]

AMQP_EXCHANGE = "laundry_dispatch"


@dataclass
class MessageEnvelope:
	"""Represents a structured message transported over the bus."""

	topic: str
	payload: dict
	qos: int = 0


class MessageBus:
	"""Abstract messaging bus interface."""

	async def connect(self) -> None:  # pragma: no cover - interface
		raise NotImplementedError

	async def publish(self, envelope: MessageEnvelope) -> None:  # pragma: no cover - interface
		raise NotImplementedError

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:  # pragma: no cover - interface
		raise NotImplementedError

	async def close(self) -> None:  # pragma: no cover - interface
		raise NotImplementedError


async def _invoke(handler: MessageHandler, payload: dict) -> None:
	result = handler(payload)
	if asyncio.iscoroutine(result):
		await result


class InMemoryMessageBus(MessageBus):
	"""Delivers messages to local subscribers and keeps a copy of everything published."""

	def __init__(self) -> None:
		self.published: List[MessageEnvelope] = []
		self._subscriptions: Dict[str, MessageHandler] = {}
		self.connected = False

	async def connect(self) -> None:
		self.connected = True

	async def publish(self, envelope: MessageEnvelope) -> None:
		self.published.append(envelope)
		for pattern, handler in list(self._subscriptions.items()):
			if mqtt.topic_matches_sub(pattern, envelope.topic):
				await _invoke(handler, envelope.payload)

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		self._subscriptions[topic] = handler

	async def close(self) -> None:
		self.connected = False

	def messages_for(self, topic: str) -> List[dict]:
		return [envelope.payload for envelope in self.published if envelope.topic == topic]


def _tls_context(settings: MQTTSettings) -> ssl.SSLContext:
	context = ssl.create_default_context(cafile=settings.ca_path)
	if settings.client_cert_path:
		context.load_cert_chain(settings.client_cert_path, settings.client_key_path)
	return context


class MQTTMessageBus(MessageBus):
	"""Async wrapper around :mod:`paho.mqtt` with TLS support."""

	def __init__(self, client_id: str, settings: MQTTSettings) -> None:
		self.settings = settings
		self.client = mqtt.Client(client_id=client_id, callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
		self.loop: Optional[asyncio.AbstractEventLoop] = None
		self._subscriptions: Dict[str, MessageHandler] = {}
		self.client.on_message = self._handle_message
		self.client.on_connect = self._on_connect

		if settings.username:
			self.client.username_pw_set(settings.username, settings.password)

		if settings.use_tls:
			self.client.tls_set_context(_tls_context(settings))

	async def connect(self) -> None:
		self.loop = asyncio.get_running_loop()
		await self.loop.run_in_executor(
			None,
			lambda: self.client.connect(self.settings.broker_host, self.settings.port, keepalive=self.settings.keepalive_s),
		)
		self.client.loop_start()
		logger.info("mqtt_connected", host=self.settings.broker_host, port=self.settings.port)

	def _on_connect(self, client: mqtt.Client, _userdata, _flags, rc, _properties=None) -> None:
		if rc != 0:
			logger.error("mqtt_connect_failed", reason_code=str(rc))
			return
		for topic in self._subscriptions:
			client.subscribe(topic)

	def _handle_message(
		self,
		_client: mqtt.Client,
		_userdata,
		msg: mqtt.MQTTMessage,
	) -> None:
		handler = next(
			(h for pattern, h in self._subscriptions.items() if mqtt.topic_matches_sub(pattern, msg.topic)),
			None,
		)
		if not handler or self.loop is None:
			return
		try:
			payload = json.loads(msg.payload.decode())
		except ValueError:
			logger.warning("mqtt_payload_not_json", topic=msg.topic)
			return
		asyncio.run_coroutine_threadsafe(_invoke(handler, payload), self.loop)

	async def publish(self, envelope: MessageEnvelope) -> None:
		data = json.dumps(envelope.payload, default=str)
		loop = asyncio.get_running_loop()
		info = await loop.run_in_executor(
			None,
			lambda: self.client.publish(envelope.topic, data, qos=envelope.qos),
		)
		if info.rc != mqtt.MQTT_ERR_SUCCESS:
			raise ConnectionError(f"MQTT publish to {envelope.topic} failed: {mqtt.error_string(info.rc)}")

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		self._subscriptions[topic] = handler
		loop = asyncio.get_running_loop()
		await loop.run_in_executor(None, lambda: self.client.subscribe(topic))

	async def close(self) -> None:
		loop = asyncio.get_running_loop()
		await loop.run_in_executor(None, self.client.loop_stop)
		await loop.run_in_executor(None, self.client.disconnect)


class AMQPMessageBus(MessageBus):
	"""AMQP implementation backed by :mod:`aio_pika`."""

	def __init__(self, url: str) -> None:
		self.url = url
		self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
		self._channel: Optional[aio_pika.abc.AbstractChannel] = None
		self._exchange: Optional[aio_pika.abc.AbstractExchange] = None
		self._queues: Dict[str, aio_pika.abc.AbstractQueue] = {}

	async def connect(self) -> None:
		self._connection = await aio_pika.connect_robust(self.url)
		self._channel = await self._connection.channel()
		self._exchange = await self._channel.declare_exchange(AMQP_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
		logger.info("amqp_connected", exchange=AMQP_EXCHANGE)

	async def publish(self, envelope: MessageEnvelope) -> None:
		if self._exchange is None:
			raise RuntimeError("AMQP bus used before connect()")
		await self._exchange.publish(
			aio_pika.Message(
				body=json.dumps(envelope.payload, default=str).encode(),
				content_type="application/json",
			),
			routing_key=envelope.topic.replace("/", "."),
		)

	async def subscribe(self, topic: str, handler: MessageHandler) -> None:
		if self._channel is None or self._exchange is None:
			raise RuntimeError("AMQP bus used before connect()")
		routing_key = topic.replace("/", ".").replace("+", "*")
		queue = await self._channel.declare_queue(exclusive=True)
		await queue.bind(self._exchange, routing_key=routing_key)

		async def _wrapped(message: AbstractIncomingMessage) -> None:
			async with message.process():
				await _invoke(handler, json.loads(message.body.decode()))

		await queue.consume(_wrapped)
		self._queues[topic] = queue

	async def close(self) -> None:
		if self._channel:
			await self._channel.close()
		if self._connection:
			await self._connection.close()


def build_message_bus(settings: MQTTSettings, client_id: str = "laundry-dispatch") -> MessageBus:
	"""Pick the bus backend the configuration asks for."""

	if settings.enabled:
		return MQTTMessageBus(client_id, settings)
	if settings.amqp_url:
		return AMQPMessageBus(settings.amqp_url)
	return InMemoryMessageBus()
