"""Tenant administration, staff accounts and cross-tenant isolation."""

import pytest
from decimal import Decimal

from tablequeue.core.errors import ConflictError, DomainValidationError, NotFoundError
from tablequeue.core.rbac import GlobalRole, OrgScope, StaffRole
from tablequeue.core.security import verify_password
from tablequeue.models import MenuItem, Organization, OrganizationType, Table, User
from tablequeue.services.menu_service import MenuService
from tablequeue.services.notification_bus import EventType
from tablequeue.services.organization_service import OrganizationService, slugify
from tablequeue.services.table_service import TableService
from tablequeue.services.waiter_call_service import WaiterCallService

SUPER_SCOPE = OrgScope(organization_id=None, is_super_admin=True)


@pytest.fixture
def platform(db_session, bus):
    return OrganizationService(db_session, bus, SUPER_SCOPE)


class TestCreateOrganization:
    def test_creates_org_and_admin_together(self, db_session, platform, events):
        org, admin = platform.create_organization_with_admin(
            name="Sunrise Diner",
            email="hi@sunrise.test",
            type=OrganizationType.RESTAURANT,
            admin_username="sunrise_admin",
            admin_password="secret123",
            admin_name="Sam",
        )
        assert org.slug == "sunrise-diner"
        assert admin.organization_id == org.id
        assert admin.global_role == GlobalRole.ORG_ADMIN
        assert admin.email == "hi@sunrise.test"
        assert verify_password("secret123", admin.password_hash)
        assert events[-1].type == EventType.ORGANIZATION_CREATED

    def test_duplicate_slug(self, platform, organization):
        with pytest.raises(ConflictError):
            platform.create_organization_with_admin(
                name="Bella Cucina!", email="x@y.test", type=OrganizationType.RESTAURANT,
                admin_username="another", admin_password="secret123", admin_name="A",
            )

    def test_duplicate_username_creates_nothing(self, db_session, platform, admin_user):
        with pytest.raises(ConflictError):
            platform.create_organization_with_admin(
                name="Fresh Place", email="x@y.test", type=OrganizationType.RESTAURANT,
                admin_username=admin_user.username, admin_password="secret123", admin_name="A",
            )
        assert db_session.query(Organization).filter(Organization.slug == "fresh-place").count() == 0

    def test_register_adds_unique_suffix(self, db_session, bus):
        service = OrganizationService(db_session, bus)
        first, _ = service.register_organization(
            organization_name="Corner Cafe", organization_type=OrganizationType.RESTAURANT,
            email="a@cafe.test", username="cafe_one", password="secret123", name="One",
        )
        second, _ = service.register_organization(
            organization_name="Corner Cafe", organization_type=OrganizationType.QUEUE_BUSINESS,
            email="b@cafe.test", username="cafe_two", password="secret123", name="Two",
        )
        assert first.slug.startswith("corner-cafe-")
        assert first.slug != second.slug

    def test_register_rejects_both(self, db_session, bus):
        with pytest.raises(DomainValidationError):
            OrganizationService(db_session, bus).register_organization(
                organization_name="Hybrid", organization_type=OrganizationType.BOTH,
                email="h@h.test", username="hybrid", password="secret123", name="H",
            )

    def test_slugify(self):
        assert slugify("  Joe's Bar & Grill ") == "joe-s-bar-grill"
        assert slugify("!!!") == "organization"


class TestOrganizationSettings:
    def test_deactivate(self, platform, organization, events):
        org = platform.update_organization(organization.id, {"is_active": False})
        assert org.is_active is False
        assert events[-1].data == {"organization_id": organization.id, "is_active": False}

    def test_org_admin_branding(self, db_session, bus, scope, organization):
        service = OrganizationService(db_session, bus, scope)
        org = service.update_settings({"slogan": "Fresh every day", "primary_color": "#aa0000"})
        assert org.slogan == "Fresh every day"
        assert org.primary_color == "#aa0000"

    def test_branding_cannot_toggle_active(self, db_session, bus, scope, organization):
        org = OrganizationService(db_session, bus, scope).update_settings({"is_active": False})
        assert org.is_active is True

    def test_empty_name_rejected(self, db_session, bus, scope):
        with pytest.raises(DomainValidationError):
            OrganizationService(db_session, bus, scope).update_settings({"name": "   "})

    def test_org_admin_sees_only_own_organization(self, db_session, bus, scope, organization, other_organization):
        service = OrganizationService(db_session, bus, scope)
        assert [o.id for o in service.list_organizations()] == [organization.id]
        with pytest.raises(NotFoundError):
            service.get_organization(other_organization.id)


class TestStaffUsers:
    def test_create_user_in_own_org(self, db_session, bus, scope, organization):
        user = OrganizationService(db_session, bus, scope).create_user(
            username="newcook", password="secret123", role=StaffRole.KITCHEN,
        )
        assert user.organization_id == organization.id
        assert user.global_role == GlobalRole.ORG_STAFF

    def test_org_admin_cannot_target_other_org(self, db_session, bus, scope, organization, other_organization):
        user = OrganizationService(db_session, bus, scope).create_user(
            username="sneaky", password="secret123", role=StaffRole.WAITER,
            organization_id=other_organization.id,
        )
        assert user.organization_id == organization.id

    def test_super_admin_account_cannot_be_created(self, db_session, bus, scope):
        with pytest.raises(DomainValidationError):
            OrganizationService(db_session, bus, scope).create_user(
                username="root", password="secret123", role=StaffRole.ADMIN,
                global_role=GlobalRole.SUPER_ADMIN,
            )

    def test_foreign_user_not_found(self, db_session, bus, scope, make_user, other_organization):
        stranger = make_user("stranger", other_organization)
        service = OrganizationService(db_session, bus, scope)
        with pytest.raises(NotFoundError):
            service.update_user(stranger.id, {"name": "Hijacked"})
        with pytest.raises(NotFoundError):
            service.delete_user(stranger.id, acting_user_id=0)

    def test_super_admin_hidden_from_org_admin(self, db_session, bus, scope, super_admin):
        with pytest.raises(NotFoundError):
            OrganizationService(db_session, bus, scope).reset_password(super_admin.id, "another1")

    def test_cannot_delete_self(self, db_session, bus, scope, admin_user):
        with pytest.raises(DomainValidationError):
            OrganizationService(db_session, bus, scope).delete_user(admin_user.id, acting_user_id=admin_user.id)

    def test_reset_password(self, db_session, bus, scope, waiter_user):
        OrganizationService(db_session, bus, scope).reset_password(waiter_user.id, "brandnew1")
        db_session.refresh(waiter_user)
        assert verify_password("brandnew1", waiter_user.password_hash)

    def test_short_password_rejected(self, db_session, bus, scope, waiter_user):
        with pytest.raises(DomainValidationError):
            OrganizationService(db_session, bus, scope).reset_password(waiter_user.id, "abc")

    def test_delete_user(self, db_session, bus, scope, admin_user, waiter_user):
        OrganizationService(db_session, bus, scope).delete_user(waiter_user.id, acting_user_id=admin_user.id)
        assert db_session.query(User).filter(User.username == "waiter").count() == 0


class TestTenantIsolation:
    @pytest.fixture
    def foreign_scope(self, other_organization):
        return OrgScope(organization_id=other_organization.id)

    def test_tables(self, db_session, bus, table, foreign_scope):
        service = TableService(db_session, bus, foreign_scope)
        assert service.list_tables() == []
        with pytest.raises(NotFoundError):
            service.update_table(table.id, capacity=8)

    def test_menu(self, db_session, bus, menu, foreign_scope):
        service = MenuService(db_session, bus, foreign_scope)
        assert service.list_items() == []
        with pytest.raises(NotFoundError):
            service.delete_item(menu["burger"].id)

    def test_waiter_calls(self, db_session, bus, table, foreign_scope):
        call = WaiterCallService(db_session, bus).create_call(table.qr_code, "bill")
        service = WaiterCallService(db_session, bus, foreign_scope)
        assert service.get_active_calls() == []
        with pytest.raises(NotFoundError):
            service.resolve_call(call.id)

    def test_super_admin_sees_all_tenants(self, db_session, bus, table, other_organization):
        foreign = Table(organization_id=other_organization.id, number=1, capacity=2, qr_code="table-foreign")
        db_session.add(foreign)
        db_session.commit()
        assert len(TableService(db_session, bus, SUPER_SCOPE).list_tables()) == 2


class TestFloorAndMenu:
    def test_create_table_token(self, db_session, bus, scope, organization):
        table = TableService(db_session, bus, scope).create_table(7, capacity=6)
        assert table.qr_code.startswith(f"table-{organization.id}-7-")

    def test_duplicate_table_number(self, db_session, bus, scope, table):
        with pytest.raises(ConflictError):
            TableService(db_session, bus, scope).create_table(table.number)

    def test_same_number_in_other_org_is_fine(self, db_session, bus, table, other_organization):
        service = TableService(db_session, bus, OrgScope(organization_id=other_organization.id))
        assert service.create_table(table.number).number == table.number

    def test_table_with_orders_cannot_be_deleted(self, db_session, bus, scope, table, menu):
        from tablequeue.services.order_service import CartLine, OrderService
        OrderService(db_session, bus).submit_order(table.id, [CartLine(menu_item_id=menu["burger"].id)])
        with pytest.raises(ConflictError):
            TableService(db_session, bus, scope).delete_table(table.id)

    def test_public_table_lookup(self, db_session, bus, table, menu):
        result = TableService(db_session, bus).table_by_qr(table.qr_code)
        assert result["table"].id == table.id
        assert sorted(m.name for m in result["menu"]) == ["Classic Burger", "Lemon Soda"]

    def test_inactive_organization_hides_tables(self, db_session, bus, table, organization):
        organization.is_active = False
        db_session.commit()
        with pytest.raises(NotFoundError):
            TableService(db_session, bus).table_by_qr(table.qr_code)

    def test_menu_price_quantized(self, db_session, bus, scope):
        item = MenuService(db_session, bus, scope).create_item(name="Tea", price=Decimal("2.499"))
        assert item.price == Decimal("2.50")

    def test_deleting_menu_item_keeps_order_snapshot(self, db_session, bus, scope, table, menu):
        from tablequeue.services.order_service import CartLine, OrderService
        order = OrderService(db_session, bus).submit_order(table.id, [CartLine(menu_item_id=menu["burger"].id)])
        MenuService(db_session, bus, scope).delete_item(menu["burger"].id)

        db_session.expire_all()
        item = order.items[0]
        assert item.menu_item_id is None
        assert item.name == "Classic Burger"
        assert item.price == Decimal("5.00")
        assert db_session.query(MenuItem).count() == 2
