from __future__ import annotations

import yaml

import ubl_cius.config as config_mod


class TestGetConfigDir:
    def test_from_env_var(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UBL_CIUS_CONFIG_DIR", str(tmp_path))
        assert config_mod.get_config_dir() == tmp_path

    def test_project_root_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("UBL_CIUS_CONFIG_DIR", raising=False)
        fake_module_dir = tmp_path / "src" / "ubl_cius"
        fake_module_dir.mkdir(parents=True)
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        monkeypatch.setattr(config_mod, "__file__", str(fake_module_dir / "config.py"))
        assert config_mod.get_config_dir() == config_dir

    def test_platformdirs_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("UBL_CIUS_CONFIG_DIR", raising=False)
        fake = tmp_path / "nowhere" / "src" / "ubl_cius"
        fake.mkdir(parents=True)
        monkeypatch.setattr(config_mod, "__file__", str(fake / "config.py"))
        assert "ubl-cius" in str(config_mod.get_config_dir())


class TestMaxXmlBytes:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("UBL_CIUS_MAX_XML_BYTES", raising=False)
        assert config_mod.get_max_xml_bytes() == 5 * 1024 * 1024

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("UBL_CIUS_MAX_XML_BYTES", "2048")
        assert config_mod.get_max_xml_bytes() == 2048

    def test_invalid_falls_back(self, monkeypatch):
        monkeypatch.setenv("UBL_CIUS_MAX_XML_BYTES", "lots")
        assert config_mod.get_max_xml_bytes() == config_mod.DEFAULT_MAX_XML_BYTES

    def test_non_positive_falls_back(self, monkeypatch):
        monkeypatch.setenv("UBL_CIUS_MAX_XML_BYTES", "0")
        assert config_mod.get_max_xml_bytes() == config_mod.DEFAULT_MAX_XML_BYTES


class TestProfiles:
    def test_load_supplier(self, config_dir, supplier_dict):
        (config_dir / "supplier.yaml").write_text(yaml.safe_dump(supplier_dict))
        assert config_mod.load_supplier() == supplier_dict

    def test_load_customer(self, config_dir, customer_dict):
        (config_dir / "customers" / "kupac.yaml").write_text(yaml.safe_dump(customer_dict))
        assert config_mod.load_customer("kupac") == customer_dict

    def test_list_customers_sorted(self, config_dir):
        for name in ("zeta", "alfa"):
            (config_dir / "customers" / f"{name}.yaml").write_text("oib: '12345678901'\n")
        assert config_mod.list_customers() == ["alfa", "zeta"]

    def test_list_customers_no_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UBL_CIUS_CONFIG_DIR", str(tmp_path))
        assert config_mod.list_customers() == []


class TestLoadEnv:
    def test_config_dir_env_file_read_on_first_use(self, config_dir, monkeypatch):
        (config_dir / ".env").write_text("UBL_CIUS_MAX_XML_BYTES=4096\n")
        monkeypatch.setenv("UBL_CIUS_MAX_XML_BYTES", "1")
        monkeypatch.delenv("UBL_CIUS_MAX_XML_BYTES")
        config_mod.load_env.cache_clear()
        try:
            assert config_mod.get_max_xml_bytes() == 4096
        finally:
            config_mod.load_env.cache_clear()

    def test_loaded_once(self, monkeypatch):
        calls = []
        monkeypatch.setattr(config_mod, "load_dotenv", lambda *a, **kw: calls.append(a))
        config_mod.load_env.cache_clear()
        config_mod.get_max_xml_bytes()
        config_mod.get_max_xml_bytes()
        assert len(calls) >= 1
        first = len(calls)
        config_mod.get_config_dir()
        assert len(calls) == first
