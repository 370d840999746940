import dataclasses
from datetime import datetime

import pytest

from report_bridge.config import DEFAULT_ARRAY_NODE, DEFAULT_CYCLE_ROWS, NodeMappings
from report_bridge.models import (
    NOT_FOUND,
    FieldTag,
    MeasuredValue,
    MeasurementCycle,
    ReportRecord,
    TimestampValue,
)
from report_bridge.node_mapper import NodeMapper, scalar_value


def _cycles(n):
    return tuple(MeasurementCycle(i, 100 + i, 200 + i, 10.0 + i / 10, 0.001, 1.5, -0.0002)
                 for i in range(1, n + 1))


def test_scalar_value_prefers_derived_values():
    assert scalar_value(MeasuredValue("12.3400 g", 12.34)) == "12.34"
    assert scalar_value(MeasuredValue("3", 3.0)) == "3"
    assert scalar_value(MeasuredValue("odd text", None)) == "odd text"
    assert scalar_value(MeasuredValue()) is None

    assert scalar_value(TimestampValue("Mar 1, 2024 9:05 AM", datetime(2024, 3, 1, 9, 5))) \
        == "2024-03-01 09:05:00"
    assert scalar_value(TimestampValue("garbled", None)) == "garbled"
    assert scalar_value(TimestampValue()) is None

    assert scalar_value("GeoPyc") == "GeoPyc"
    assert scalar_value(NOT_FOUND) is None
    assert scalar_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02 03:04:05"


def test_map_report_order_and_values(record):
    items = NodeMapper(NodeMappings()).map_report(record)
    by_node = {i.node_id: i for i in items}

    mass = by_node["ns=2;s=pdf_extractor.Data_import.sample_mass"]
    assert mass.value == "12.34"
    assert mass.description == "Sample Mass"
    assert by_node["ns=2;s=pdf_extractor.Data_import.started"].value == "2024-03-01 09:05:00"
    assert by_node["ns=2;s=pdf_extractor.Instrument.version"].value == "GeoPyc 1365 v2.03"

    # scalars first, in field order, then cycle rows, then the array slot
    scalar_nodes = [i.node_id for i in items[:len(FieldTag)]]
    assert scalar_nodes[0].endswith("ReportInfo.generated")
    assert scalar_nodes[-1].endswith("Results.standard_deviation_density")
    assert [i.description for i in items[len(FieldTag):]] == [
        "Cycle Row 1", "Cycle Row 2", "Cycle Row 3", "Data Import Array"]
    assert items[-1].value == record.cycles[0].as_array()
    assert items[len(FieldTag)].value == "1,1024,2048,10.1234,-0.0012,1.2345,0.0003"


def test_unmapped_and_missing_fields_are_left_out(record):
    mappings = NodeMappings()
    mappings.fields[FieldTag.SAMPLE_OPERATOR] = ""
    record = dataclasses.replace(
        record, instrument=dataclasses.replace(record.instrument, version=NOT_FOUND))

    nodes = [i.node_id for i in NodeMapper(mappings).map_report(record)]
    assert "ns=2;s=pdf_extractor.Sample.operator" not in nodes
    assert "ns=2;s=pdf_extractor.Instrument.version" not in nodes
    assert "ns=2;s=pdf_extractor.Sample.submitter" in nodes


def test_cycle_cap_and_array_item():
    record = ReportRecord(cycles=_cycles(15))
    items = NodeMapper(NodeMappings(), max_cycles=10).map_cycles(record)

    assert len(items) == 11
    assert [i.node_id for i in items[:10]] == DEFAULT_CYCLE_ROWS
    assert items[9].value.startswith("10,")
    assert items[10].node_id == DEFAULT_ARRAY_NODE
    assert items[10].value == list(record.cycles[0].as_array())
    assert items[10].value[:2] == [101.0, 201.0]


def test_lower_cap_and_unconfigured_row_slots():
    mappings = NodeMappings()
    mappings.cycle_rows[1] = ""
    items = NodeMapper(mappings, max_cycles=3).map_cycles(ReportRecord(cycles=_cycles(5)))
    assert [i.description for i in items] == ["Cycle Row 1", "Cycle Row 3", "Data Import Array"]


def test_no_cycles_no_cycle_items():
    assert NodeMapper(NodeMappings()).map_cycles(ReportRecord()) == []


def test_no_array_item_without_array_node():
    mappings = NodeMappings()
    mappings.data_import_array = ""
    items = NodeMapper(mappings).map_cycles(ReportRecord(cycles=_cycles(2)))
    assert [i.description for i in items] == ["Cycle Row 1", "Cycle Row 2"]


def test_validate_mappings():
    assert NodeMapper(NodeMappings()).validate_mappings()

    mapper = NodeMapper(NodeMappings.empty())
    assert not mapper.validate_mappings()
    assert mapper.missing_required() == [
        "started_time", "completed_time", "sample_mass", "absolute_density",
        "cycle_rows[0]", "data_import_array"]


def test_empty_mappings_map_nothing(record):
    assert NodeMapper(NodeMappings.empty()).map_report(record) == []


def test_cycle_row_node_id_bounds():
    mapper = NodeMapper(NodeMappings())
    assert mapper.cycle_row_node_id(1) == DEFAULT_CYCLE_ROWS[0]
    assert mapper.cycle_row_node_id(0) is None
    assert mapper.cycle_row_node_id(11) is None


def test_mapper_requires_mappings():
    with pytest.raises(ValueError):
        NodeMapper(None)
