# spgateway

spgateway is a serial gateway between a Modbus RTU master and a device that
speaks the SPNet trunk protocol. Requests come in on one serial line as
Modbus RTU frames. Each payload is byte-stuffed with DLE, given an SPNet
checksum and sent to the device on a second line. The device's reply is
checked and de-stuffed, then returned to the Modbus master. The reply carries
the slave address and function code of the last accepted "write multiple
registers" request.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Running the gateway

```
spgateway
```

The command opens both serial lines and starts three worker threads: Modbus
receive, SP processing and Modbus send. It runs until interrupted with
Ctrl-C. If a line cannot be opened, it logs the error and exits with status 1.

Options:

- `--modbus-port`: the Modbus serial port or pyserial URL. Default `/dev/ttyUSB0`.
- `--sp-port`: the SP serial port or pyserial URL. Default `/dev/ttyUSB1`.
- `--modbus-baud`, `--sp-baud`: the baud rates. Both default to 9600.
- `--slave-address`: the Modbus slave address. It accepts decimal, or hex with
  `0x`. Default `0x01`.
- `--rs485`: enables pyserial's RS-485 half-duplex mode on both lines.
- `-v`, `--verbose`: logs at INFO level.

Both lines use 8 data bits, no parity, one stop bit and no flow control.

## How a request is handled

1. `FrameAssembler` splits the incoming bytes into frames at a silent interval
   of 4 ms. A frame longer than 183 bytes is discarded.
2. `decode_request` checks the frame length (at least 4 bytes), the slave
   address and the Modbus CRC. For function `0x10` the payload is the data
   bytes given by the byte count, with one trailing zero byte dropped. For
   any other function the payload is empty.
3. `ModbusReceiver` answers a rejected frame with `exception_response`. This
   reply is the stored address, the function with bit `0x80` set, exception
   code `0x04`, and the CRC. Accepted payloads are put on a queue.
4. `FrameProcessor` builds the request with `build_sp_request`: the payload is
   stuffed and a big-endian SPNet checksum is added. The checksum covers
   everything after the first two bytes. The processor writes the request,
   reads up to 240 bytes of reply and passes them to `parse_sp_reply`. That
   function expects a two-byte preamble, computes the checksum from the fifth
   byte to the end of the message, and de-stuffs everything between the
   preamble and the checksum. A reply with a bad checksum is logged but still
   passed on. A message longer than twice the payload is dropped.
5. `ModbusResponder` sends each message back using `build_response`: address,
   function, message and a little-endian Modbus CRC.

## Using it as a library

```python
from spgateway.crc import modbus_crc16, spnet_crc
from spgateway.staffing import stuff, destuff, StuffingOverflowError

payload = bytes([0x00, 0x01, 0x02, 0x01])
framed = stuff(payload, max_length=16)          # DLE before SOH, ISI, STX, ETX
assert destuff(framed, max_length=16) == payload

modbus_crc16(b"\x01\x03\x00\x00\x00\x01")      # Modbus RTU CRC-16
spnet_crc(framed)                              # CRC-16, polynomial 0x1021, initial value 0
```

If the output would be longer than `max_length`, `stuff` and `destuff` raise
`StuffingOverflowError`. The error's `partial` attribute holds the bytes
produced before the limit was reached.

Modules:

- `spgateway.config`: `GatewayConfig`, which holds both lines' settings and
  the protocol limits, and `SerialSettings`, whose `open()` returns a pyserial
  port.
- `spgateway.modbus`: `FrameAssembler`, `decode_request`, `Request`,
  `exception_response`, `ModbusFrameError` and `ModbusReceiver`.
- `spgateway.processor`: `build_sp_request`, `parse_sp_reply`, `SpReplyError`
  and `FrameProcessor`.
- `spgateway.responder`: `build_response` and `ModbusResponder`.
- `spgateway.indicator`: `RgbIndicator` and `Color`. `RgbIndicator` tracks the
  levels of a three-channel status light. An optional `on_change` callback
  receives each channel change.
- `spgateway.gateway`: `Gateway`, which starts and stops the workers. It can
  also be used as a context manager. Links can be passed in instead of being
  opened from the configuration.

## What it does not do

- The status indicator is only tracked in memory; nothing drives a physical
  LED unless you supply an `on_change` callback. The gateway switches it to
  blue at start-up and after every reply it sends. It never shows red or
  green by itself.
- No Modbus register map is kept. Only function `0x10` is forwarded with a
  payload, and no other Modbus function is answered on its own.
- Each SP request gets a single read of the reply. There are no retries and
  no baud-rate negotiation with the device.