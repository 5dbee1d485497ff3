import pytest
import asyncio
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from rentbook.core.exceptions import ConflictError, StorageUnavailableError, ValidationError
from rentbook.models.database import Base, StockItem
from rentbook.models.schemas import BookingCreate, BookingItemCreate
from rentbook.services.booking_service import BookingService
from rentbook.services.business_service import BusinessService
from rentbook.services.reservation_service import ReservationEngine
from rentbook.services.stock_catalog import StockCatalog

TEST_DATABASE_URL = "sqlite:///./test_reservation.db"

@pytest.fixture
def test_engine():
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def business(test_db):
    return BusinessService(test_db).create_business("Party Rentals", "owner@example.com")

@pytest.fixture
def chairs(test_db, business):
    return StockCatalog(test_db).add(business.id, "Chairs", 50, price=100.0)

@pytest.fixture
def speakers(test_db, business):
    """Only 5 speakers in stock"""
    return StockCatalog(test_db).add(business.id, "Speakers", 5, price=2500.0)


def make_booking(client_name, *items):
    return BookingCreate(
        event_name=f"{client_name}'s Party",
        client_name=client_name,
        event_date=date.today() + timedelta(days=10),
        items=[BookingItemCreate(item_name=name, quantity=quantity) for name, quantity in items],
    )


class TestReservationEngine:
    """Shortage accounting for a single reservation"""

    @pytest.mark.asyncio
    async def test_reserve_within_stock(self, test_db, business, chairs):
        lines = await ReservationEngine(test_db).reserve(
            business.id, [BookingItemCreate(item_name="chairs", quantity=30)]
        )

        assert len(lines) == 1
        assert lines[0].item_id == chairs.id
        assert lines[0].item_name == "Chairs"
        assert lines[0].unit_price == 100.0
        assert lines[0].shortage == 0
        assert lines[0].deduction == 30

        test_db.refresh(chairs)
        assert chairs.available_quantity == 20
        assert chairs.version == 2

    @pytest.mark.asyncio
    async def test_overbooking_is_recorded_not_rejected(self, test_db, business, chairs):
        engine = ReservationEngine(test_db)
        await engine.reserve(business.id, [BookingItemCreate(item_name="Chairs", quantity=30)])
        lines = await engine.reserve(business.id, [BookingItemCreate(item_name="Chairs", quantity=30)])

        assert lines[0].shortage == 10
        assert lines[0].deduction == 20

        test_db.refresh(chairs)
        assert chairs.available_quantity == 0

    @pytest.mark.asyncio
    async def test_unknown_item_is_all_shortage(self, test_db, business, chairs):
        lines = await ReservationEngine(test_db).reserve(
            business.id, [BookingItemCreate(item_name="Generator", quantity=5, unit_price=30000.0)]
        )

        assert lines[0].item_id is None
        assert lines[0].item_name == "Generator"
        assert lines[0].shortage == 5
        assert lines[0].deduction == 0
        assert lines[0].unit_price == 30000.0

        # No catalog row was created or altered
        assert test_db.query(StockItem).count() == 1
        test_db.refresh(chairs)
        assert chairs.available_quantity == 50

    @pytest.mark.asyncio
    async def test_reserve_by_item_id(self, test_db, business, chairs):
        lines = await ReservationEngine(test_db).reserve(
            business.id, [BookingItemCreate(item_id=chairs.id, quantity=3)]
        )
        assert lines[0].item_id == chairs.id
        test_db.refresh(chairs)
        assert chairs.available_quantity == 47

    @pytest.mark.asyncio
    async def test_repeated_item_in_one_request(self, test_db, business, speakers):
        """Two lines for the same item draw from the same running availability"""
        lines = await ReservationEngine(test_db).reserve(business.id, [
            BookingItemCreate(item_name="Speakers", quantity=4),
            BookingItemCreate(item_name="SPEAKERS", quantity=4),
        ])

        assert [line.shortage for line in lines] == [0, 3]
        test_db.refresh(speakers)
        assert speakers.available_quantity == 0

    @pytest.mark.asyncio
    async def test_multi_item_reservation(self, test_db, business, chairs, speakers):
        lines = await ReservationEngine(test_db).reserve(business.id, [
            BookingItemCreate(item_name="Chairs", quantity=10),
            BookingItemCreate(item_name="Speakers", quantity=7),
        ])

        assert [line.shortage for line in lines] == [0, 2]
        test_db.refresh(chairs)
        test_db.refresh(speakers)
        assert chairs.available_quantity == 40
        assert speakers.available_quantity == 0

    @pytest.mark.asyncio
    async def test_invalid_requests_rejected_before_storage(self, test_db, business, chairs):
        engine = ReservationEngine(test_db)

        with pytest.raises(ValidationError):
            await engine.reserve(business.id, [])
        with pytest.raises(ValidationError):
            await engine.reserve(business.id, [BookingItemCreate(item_name="Chairs", quantity=-2)])
        with pytest.raises(ValidationError):
            await engine.reserve(business.id, [BookingItemCreate(item_name="Chairs", quantity=0)])
        with pytest.raises(ValidationError):
            await engine.reserve(business.id, [BookingItemCreate(item_name="  ", quantity=1)])

        test_db.refresh(chairs)
        assert chairs.available_quantity == 50
        assert chairs.version == 1


class TestOptimisticLocking:
    """Concurrent reservations against the same stock row"""

    @pytest.mark.asyncio
    async def test_conflicting_write_retries_from_fresh_read(self, session_factory, business, speakers):
        """
        Another session reserves 4 speakers after our read but before our
        write. Our stale write must be refused and recomputed, so the two
        reservations never deduct more than the 5 in stock.
        """
        first = session_factory()
        second = session_factory()
        try:
            engine = ReservationEngine(first)
            original_write = engine._write_deduction
            writes = []

            def racing_write(snapshot):
                writes.append(snapshot['original_available'])
                if len(writes) == 1:
                    competing = ReservationEngine(second).apply(
                        business.id, [BookingItemCreate(item_name="Speakers", quantity=4)]
                    )
                    second.commit()
                    assert competing[0].shortage == 0
                original_write(snapshot)

            engine._write_deduction = racing_write

            lines = await engine.reserve(business.id, [BookingItemCreate(item_name="Speakers", quantity=4)])

            # First attempt saw 5 and lost the race, the retry saw 1
            assert writes == [5, 1]
            assert lines[0].deduction == 1
            assert lines[0].shortage == 3

            item = first.query(StockItem).filter(StockItem.id == speakers.id).one()
            first.refresh(item)
            assert item.available_quantity == 0
        finally:
            first.close()
            second.close()

    def test_edit_refused_after_reservation_moved_the_item(self, session_factory, business, speakers):
        """An admin edit computed from counts a reservation has since changed is not written"""
        first = session_factory()
        second = session_factory()
        try:
            catalog = StockCatalog(first)
            original_get = catalog.get

            def racing_get(business_id, item_id):
                item = original_get(business_id, item_id)
                ReservationEngine(second).apply(
                    business_id, [BookingItemCreate(item_name="Speakers", quantity=3)]
                )
                second.commit()
                return item

            catalog.get = racing_get

            with pytest.raises(ConflictError):
                catalog.edit(business.id, speakers.id, total_quantity=10, available_quantity=10)

            item = first.query(StockItem).filter(StockItem.id == speakers.id).one()
            first.refresh(item)
            assert (item.total_quantity, item.available_quantity, item.version) == (5, 2, 2)

            # A fresh edit applies on top of the reservation
            item = StockCatalog(first).edit(business.id, speakers.id, total_quantity=10)
            assert (item.total_quantity, item.available_quantity, item.version) == (10, 2, 3)
        finally:
            first.close()
            second.close()

    @pytest.mark.asyncio
    async def test_reservation_retries_after_concurrent_edit(self, session_factory, business, speakers):
        """An edit between our read and our write forces a recompute instead of an overcommit"""
        first = session_factory()
        second = session_factory()
        try:
            engine = ReservationEngine(first)
            original_write = engine._write_deduction
            writes = []

            def racing_write(snapshot):
                writes.append(snapshot['original_available'])
                if len(writes) == 1:
                    StockCatalog(second).edit(business.id, speakers.id, total_quantity=2)
                original_write(snapshot)

            engine._write_deduction = racing_write

            lines = await engine.reserve(business.id, [BookingItemCreate(item_name="Speakers", quantity=4)])

            assert writes == [5, 2]
            assert lines[0].deduction == 2
            assert lines[0].shortage == 2

            item = first.query(StockItem).filter(StockItem.id == speakers.id).one()
            first.refresh(item)
            assert (item.total_quantity, item.available_quantity) == (2, 0)
        finally:
            first.close()
            second.close()


    @pytest.mark.asyncio
    async def test_conflict_surfaces_after_bounded_retries(self, test_db, business, speakers):
        engine = ReservationEngine(test_db)
        attempts = []

        def always_conflicts(snapshot):
            attempts.append(snapshot)
            raise ConflictError("Stock item Speakers was modified by another transaction")

        engine._write_deduction = always_conflicts

        with pytest.raises(ConflictError, match="after 3 attempts"):
            await engine.reserve(business.id, [BookingItemCreate(item_name="Speakers", quantity=2)])

        assert len(attempts) == 3
        test_db.refresh(speakers)
        assert speakers.available_quantity == 5

    @pytest.mark.asyncio
    async def test_storage_fault_is_not_retried(self, test_db, business, speakers):
        engine = ReservationEngine(test_db)
        attempts = []

        def database_down(business_id, requests):
            attempts.append(business_id)
            raise OperationalError("UPDATE stock_items", {}, Exception("database is locked"))

        engine.apply = database_down

        with pytest.raises(StorageUnavailableError):
            await engine.reserve(business.id, [BookingItemCreate(item_name="Speakers", quantity=2)])
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_concurrent_bookings_never_overcommit(self, session_factory, business, speakers):
        """
        Two bookings for 4 speakers each with only 5 in stock: both go
        through, but the deductions add up to at most 5 and the rest shows
        up as shortage.
        """
        first = session_factory()
        second = session_factory()
        try:
            results = await asyncio.gather(
                BookingService(first).create_booking(business.id, make_booking("Ada", ("Speakers", 4))),
                BookingService(second).create_booking(business.id, make_booking("Bola", ("Speakers", 4))),
                return_exceptions=True
            )

            errors = [result for result in results if isinstance(result, Exception)]
            assert errors == []

            lines = [booking.line_items[0] for booking in results]
            assert sum(line.restorable for line in lines) <= 5
            assert sum(line.shortage for line in lines) >= 3
            assert any(line.shortage > 0 for line in lines)

            check = session_factory()
            try:
                item = check.query(StockItem).filter(StockItem.id == speakers.id).one()
                assert item.available_quantity == 5 - sum(line.restorable for line in lines)
                assert item.available_quantity >= 0
            finally:
                check.close()
        finally:
            first.close()
            second.close()

    @pytest.mark.asyncio
    async def test_many_concurrent_bookings(self, session_factory, business, speakers):
        sessions = [session_factory() for _ in range(5)]
        try:
            bookings = await asyncio.gather(*[
                BookingService(db).create_booking(business.id, make_booking(f"Client {i}", ("Speakers", 2)))
                for i, db in enumerate(sessions)
            ])

            deducted = sum(booking.line_items[0].restorable for booking in bookings)
            short = sum(booking.line_items[0].shortage for booking in bookings)
            assert deducted == 5
            assert short == 5
        finally:
            for db in sessions:
                db.close()
