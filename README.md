# apersync

Synchronized state machines over WebSockets.

You describe your application state as a *state machine*. A state machine is an
object with an `apply(transition)` method that changes it deterministically.
`apersync` keeps copies of that state in step between a server and any number of
connected clients.

A client gets a full copy of the state when it connects. After that, only
transition events go over the wire. The server applies every event in one order
and broadcasts it to every connected player, so all copies stay the same.

## Installing

```
pip install apersync
```

To install the test dependencies as well:

```
pip install "apersync[test]"
```

## Vocabulary

- **player**: one connection to the service, identified by a
  `apersync.core.PlayerID`.
- **transition**: a `apersync.core.Transition` value that describes a change to
  the state, for example "add 1".
- **event**: a `apersync.core.TransitionEvent`. It wraps a transition together
  with the player who made it and a timestamp.
- **channel**: a `apersync.channel.Channel`, a state object together with the
  listeners connected to it.

## Writing a state machine

Subclass `apersync.core.StateMachine` and implement `apply`. Transitions are
subclasses of `Transition`, usually frozen dataclasses. A family of transitions
shares a base class, and `Base.from_wire` finds the right subclass by name.

The bundled counter, `apersync.counter`, has a `Counter` with the transitions
`Add`, `Subtract` and `Reset`:

```python
from apersync.counter import Counter, Add, Subtract, Reset

counter = Counter()
counter.apply(Add(5))
counter.apply(Subtract(2))
print(counter.value)   # 3
counter.apply(Reset())
```

To be served, a program has to take `TransitionEvent`s. There are two ways to
get one:

- **Subclass `StateProgram`** and apply events directly. A `StateProgram` can
  also return a *suspended event* from `suspended_event()`. The channel fires
  that event at its timestamp unless a later change replaces it.
- **Wrap a plain machine in a container program.**
  `StateMachineContainerProgram.for_machine(MachineType)` returns a program
  class. Its `apply` strips the event metadata and passes the bare transition
  down to the machine. An example is `apersync.counter.CounterProgram`.

`apersync.derive.state_machine` is a class decorator. It turns a dataclass whose
fields are state machines into a composite machine. It adds:

- an `apply` that routes each `FieldTransition` to the field it names;
- a `map_<field>` method for each field;
- a `transition_type` called `<Class>Transform`.

## Data structures

- `apersync.atom.Atom`: a value that only changes by being replaced whole,
  through `atom.apply(atom.replace(new_value))`.
- `apersync.atom.Constant`: a value that never changes. Applying any transition
  to it raises `TypeError`.
- `apersync.listing.List`: an ordered list that stays stable when several users
  edit it at once.
  - Positions are `apersync.zeno_index.ZenoIndex` values. These are fractional
    indexes that can always be split again between two neighbours.
  - `append`, `prepend`, `insert` and `insert_between` each return the new
    item's id together with the operation.
  - `delete`, `move_item` and `map_item` take an item id.
  - `get_location` resolves a position to a location. A position is one of
    `Beginning`, `End`, `AbsolutePosition`, `Before` or `After`.

```python
from apersync.atom import Atom
from apersync.listing import List

items = List()
item_id, op = items.append(Atom(1))
items.apply(op)
items.apply(items.prepend(Atom(0))[1])
print([entry.value.value for entry in items])   # [0, 1]
```

## Wire format

`apersync.wire` handles encoding. Text messages are JSON; binary messages are
msgpack.

- `encode_event` and `decode_event` handle transition events.
- `encode_update` and `decode_update` handle the server's `ReplaceState` and
  `TransitionState` messages.
- `decode_update` returns a `WireWrapped` that records whether the message
  arrived as binary.

## Serving

`apersync.server.ServerBuilder(state)` builds an aiohttp application that shares
one channel among all players. The application has:

- a WebSocket endpoint at `/ws`. An optional `?token=...` query parameter lets a
  reconnecting player keep its player id.
- static files from `./static-client` under `/client/`.
- static files from `./static` under `/`. A directory request serves its
  `index.html`.

`serve()` listens on `127.0.0.1:8000`, and `serve_on(host, port)` listens where
you say. `build_app()` returns the application without running it.

Updates go out as JSON text by default, or as msgpack if you pass
`binary=True`. Each connection is a `PlayerConnection`. It pings the client
every heartbeat interval, which is 5 seconds by default, and closes the
connection if no pong arrives within two intervals.

## Client

`apersync.client.Client(url, program_type)` connects to a server's WebSocket
from Python. `await client.run()` processes updates until the connection
closes. `client.send_transition(t)` applies a transition locally and sends it.

The client keeps a `StateManager` that holds two copies of the state:

- the copy confirmed by the server;
- an optimistic copy that already includes the player's own pending
  transition.

The manager also estimates the server's clock. The client replies in whichever
encoding, text or binary, the server last used. `full_ws_url(path, page_url)`
turns a relative path into a `ws://` or `wss://` URL.

## Commands

```
apersync-counter [--host HOST] [--port PORT]
```

Serves a shared counter.

```
apersync-drop-four [--host HOST] [--port PORT]
```

Serves a two-player game of Drop Four on a board of 7 columns and 6 rows:

- The first player to join waits. The second player to join starts the game.
- The first player plays teal and moves first.
- Four discs in a line wins.
- After a win, `ResetGame` starts a new game in which the loser moves first.

Both commands default to `127.0.0.1:8000`.

## What it does not do

- There is no browser front end. The server serves whatever files you put in
  `./static` and `./static-client`, but the package does not build or supply
  them.
- The HTTP server always serves a single channel. `ChannelRegistry` can create
  and look up many named channels from a `StateProgramFactory`, but the web
  application does not route connections to them.
- The state lives only in memory. Nothing is stored between runs.